"""
civicfix.engine.badges — Badge Eligibility Diff
================================================

Pure calculation: given a points total, the badge catalogue and the set
of badge ids a user currently holds, work out exactly which badges must
be granted and which must be revoked.

This module does no database I/O.  Applying the diff is the job of
:mod:`civicfix.services.badge_service`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol


class BadgeLike(Protocol):
    id: str
    name: str
    points_required: int


@dataclass(slots=True)
class BadgeDiff:
    """Outcome of one reconciliation.

    ``granted`` and ``revoked`` hold badge ids in ascending threshold
    order; ``eligible`` is the full set the user should hold afterwards.
    """

    granted: list[str] = field(default_factory=list)
    revoked: list[str] = field(default_factory=list)
    eligible: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.granted or self.revoked)


def eligible_badges(points: int, catalog: Iterable[BadgeLike]) -> list[BadgeLike]:
    """Badges whose threshold is at or below *points*, lowest first."""
    return sorted(
        (b for b in catalog if b.points_required <= points),
        key=lambda b: (b.points_required, b.name),
    )


def diff_badges(
    points: int,
    catalog: Iterable[BadgeLike],
    held_ids: Iterable[str],
) -> BadgeDiff:
    """Compute the grant/revoke sets that make *held_ids* match *points*.

    Held ids that no longer exist in *catalog* are revoked as well, so a
    user's held set is always a subset of the eligible set afterwards.
    """
    catalog = list(catalog)
    held = set(held_ids)
    eligible = eligible_badges(points, catalog)
    eligible_ids = {b.id for b in eligible}

    order = {
        b.id: (b.points_required, b.name)
        for b in catalog
    }
    revoked = sorted(held - eligible_ids, key=lambda bid: order.get(bid, (0, bid)))
    granted = [b.id for b in eligible if b.id not in held]

    return BadgeDiff(
        granted=granted,
        revoked=revoked,
        eligible=[b.id for b in eligible],
    )
