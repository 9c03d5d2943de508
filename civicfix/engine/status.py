"""
civicfix.engine.status — Issue Status Transition Planning
==========================================================

The status machine is deliberately permissive: an authority may move an
issue from any status to any other, including re-opening ``resolved`` or
``fake`` issues and re-applying the current status.  What a transition
*does* depends only on the target status:

=============  ======================  =======================
Target         Reporter points         Issue field
=============  ======================  =======================
pending        —                       —
in_progress    —                       —
resolved       ``issue_resolved``      actual_resolution_date
fake           ``issue_fake``          —
=============  ======================  =======================

Every transition also writes one audit row and one status notification.
"""

from __future__ import annotations

from dataclasses import dataclass

from civicfix.database.models import IssueStatus
from civicfix.engine.points import PointsAction
from civicfix.errors import ValidationFailure


@dataclass(frozen=True, slots=True)
class TransitionPlan:
    status: IssueStatus
    points_action: PointsAction | None = None
    sets_resolution_date: bool = False


_PLANS: dict[IssueStatus, TransitionPlan] = {
    IssueStatus.PENDING: TransitionPlan(IssueStatus.PENDING),
    IssueStatus.IN_PROGRESS: TransitionPlan(IssueStatus.IN_PROGRESS),
    IssueStatus.RESOLVED: TransitionPlan(
        IssueStatus.RESOLVED,
        points_action=PointsAction.ISSUE_RESOLVED,
        sets_resolution_date=True,
    ),
    IssueStatus.FAKE: TransitionPlan(
        IssueStatus.FAKE, points_action=PointsAction.ISSUE_FAKE,
    ),
}


def parse_status(value: str | IssueStatus) -> IssueStatus:
    """Coerce *value* to :class:`IssueStatus` or raise :class:`ValidationFailure`."""
    try:
        return IssueStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in IssueStatus)
        raise ValidationFailure(
            f"Unknown status {value!r}; expected one of: {allowed}"
        ) from None


def plan_transition(status: str | IssueStatus) -> TransitionPlan:
    """Return the side-effect plan for moving an issue to *status*."""
    return _PLANS[parse_status(status)]
