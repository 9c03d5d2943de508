"""
civicfix.services.ledger_service — Points Ledger
=================================================

Applies point deltas to a user's cumulative score in response to
lifecycle events (issue posted, resolved, marked fake, followed).

Per application:
  1. Lock the user row and add the delta (no clamping at zero).
  2. Reconcile the user's badges in the same transaction.
  3. Commit.
  4. Emit a notification per granted badge, then one for the point change.

The ledger never raises: a missing user is a no-op and a failed write is
logged and returned in :class:`~civicfix.engine.outcomes.LedgerResult`,
so the caller's primary action (e.g. resolving an issue) still succeeds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from civicfix.database.engine import get_session
from civicfix.database.models import AdminLog, User, UserRole
from civicfix.engine.outcomes import LedgerResult, SideEffectFailure
from civicfix.engine.points import PointsAction, points_message
from civicfix.services import notification_service
from civicfix.services.badge_service import badge_messages, lock_user, sync_user_badges
from civicfix.services.settings_service import points_for

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def apply_points_action(
    engine: Engine,
    user_id: str,
    action: PointsAction | str,
    points: int | None = None,
    issue_id: str | None = None,
) -> LedgerResult:
    """Apply *points* for *action* to *user_id*.

    When *points* is ``None`` the delta is read from the ``settings``
    table (``points.<action>``).
    """
    action = PointsAction(action)
    result = LedgerResult()

    try:
        with get_session(engine) as session:
            user = lock_user(session, user_id)
            if user is None:
                logger.info("Points %s skipped: user %s not found", action, user_id)
                return result

            if points is None:
                points = points_for(session, action)

            result.old_points = user.points
            user.points = user.points + points
            session.flush()
            result.new_points = user.points

            result.badges, granted_names = sync_user_badges(session, user)
            result.applied = True
    except Exception as exc:
        logger.exception("Failed to apply %s (%+d) to user %s", action, points or 0, user_id)
        return LedgerResult(failures=[SideEffectFailure("points", user_id, str(exc))])

    logger.info(
        "Points %s for user %s: %d → %d",
        action, user_id, result.old_points, result.new_points,
    )

    result.failures.extend(
        notification_service.emit_all(engine, badge_messages(user_id, granted_names))
    )
    failure = notification_service.emit(
        engine, user_id, points_message(action, points), issue_id,
    )
    if failure is not None:
        result.failures.append(failure)
    return result


def reset_user_points(engine: Engine, user_id: str, *, actor_id: str) -> LedgerResult:
    """Admin action: set *user_id*'s points to zero and reconcile badges.

    Audit-logged.  No notification is sent to the user.
    """
    result = LedgerResult()
    with get_session(engine) as session:
        user = lock_user(session, user_id)
        if user is None:
            return result

        result.old_points = user.points
        user.points = 0
        session.flush()
        result.new_points = 0
        result.badges, _ = sync_user_badges(session, user)
        result.applied = True

        session.add(AdminLog(
            actor_id=actor_id,
            action_type="RESET_POINTS",
            target_table="users",
            target_id=user_id,
            before_snapshot={"points": result.old_points},
            after_snapshot={
                "points": 0,
                "badges_revoked": len(result.badges.revoked),
                "badges_granted": len(result.badges.granted),
            },
        ))

    logger.info("Admin %s reset points for user %s (was %d)", actor_id, user_id, result.old_points)
    return result


def get_leaderboard(engine: Engine, limit: int = 10) -> list[dict]:
    """Top citizens by points, highest first."""
    with get_session(engine) as session:
        rows = session.execute(
            select(User.id, User.name, User.points)
            .where(User.role == UserRole.CITIZEN.value)
            .order_by(User.points.desc(), User.created_at)
            .limit(limit)
        ).all()
        return [
            {"rank": i, "id": r.id, "name": r.name, "points": r.points}
            for i, r in enumerate(rows, start=1)
        ]
