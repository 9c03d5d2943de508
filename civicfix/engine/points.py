"""
civicfix.engine.points — Points Actions & Deltas
=================================================

Every lifecycle event that moves a user's score is a :class:`PointsAction`.
Default deltas are listed here; the live values come from the
``settings`` table (``points.<action>``) so admins can retune them.
"""

from __future__ import annotations

import enum

from civicfix.constants import POINTS_EARNED_MESSAGE, POINTS_LOST_MESSAGE


class PointsAction(enum.StrEnum):
    POST_ISSUE = "post_issue"
    ISSUE_RESOLVED = "issue_resolved"
    ISSUE_FAKE = "issue_fake"
    FOLLOW_ISSUE = "follow_issue"


DEFAULT_POINTS: dict[PointsAction, int] = {
    PointsAction.POST_ISSUE: 10,
    PointsAction.ISSUE_RESOLVED: 20,
    PointsAction.ISSUE_FAKE: -15,
    PointsAction.FOLLOW_ISSUE: 0,  # caller-defined; 0 disables the award
}


def setting_key(action: PointsAction) -> str:
    return f"points.{action.value}"


def action_label(action: PointsAction | str) -> str:
    """``"issue_resolved"`` → ``"issue resolved"``."""
    return str(action).replace("_", " ")


def points_message(action: PointsAction | str, points: int) -> str:
    """Notification text for a ledger change of *points*."""
    if points < 0:
        return POINTS_LOST_MESSAGE.format(points=-points, action=action_label(action))
    return POINTS_EARNED_MESSAGE.format(points=points, action=action_label(action))
