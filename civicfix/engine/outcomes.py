"""
civicfix.engine.outcomes — Side-Effect Result Types
====================================================

The user-visible action (resolve an issue, report an issue) must never
fail because a secondary gamification write failed.  Instead of silently
swallowing those errors, services log them and hand back a
:class:`SideEffectFailure` so callers and operators can see what drifted.
Drift in points or badges is corrected by the batch badge repair.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from civicfix.engine.badges import BadgeDiff


@dataclass(frozen=True, slots=True)
class SideEffectFailure:
    """A best-effort write that did not happen.

    Parameters
    ----------
    effect : ``"points"``, ``"badges"`` or ``"notification"``.
    target_id : The user (or issue) the write was for.
    error : Short description of the underlying exception.
    """

    effect: str
    target_id: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"effect": self.effect, "target_id": self.target_id, "error": self.error}


@dataclass(slots=True)
class LedgerResult:
    """Output of one points-ledger application."""

    applied: bool = False
    old_points: int | None = None
    new_points: int | None = None
    badges: BadgeDiff = field(default_factory=BadgeDiff)
    failures: list[SideEffectFailure] = field(default_factory=list)


@dataclass(slots=True)
class TransitionResult:
    """Output of a single or bulk issue status transition.

    ``updated`` counts issues whose status and audit row were committed.
    ``failures`` collects side effects that did not complete.
    """

    status: str
    issue_ids: list[str] = field(default_factory=list)
    failures: list[SideEffectFailure] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return len(self.issue_ids)

    @property
    def ok(self) -> bool:
        return not self.failures
