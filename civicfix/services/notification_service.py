"""
civicfix.services.notification_service — Notification Emitter & Read Model
===========================================================================

Writes user-facing notifications as a side effect of point changes,
badge grants and issue status transitions, and serves them back to the
owning user.

Emission is best-effort: every call inserts a fresh unread row (no
deduplication) in its own transaction, and a failed write is logged and
returned as a :class:`~civicfix.engine.outcomes.SideEffectFailure`
instead of being raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update

from civicfix.database.engine import get_session
from civicfix.database.models import Notification
from civicfix.engine.outcomes import SideEffectFailure

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Emitter
# ---------------------------------------------------------------------------
def emit(
    engine: Engine,
    user_id: str,
    message: str,
    issue_id: str | None = None,
) -> SideEffectFailure | None:
    """Create one unread notification for *user_id*.

    Returns ``None`` on success, or the failure that was logged.
    """
    try:
        with get_session(engine) as session:
            session.add(Notification(
                user_id=user_id,
                issue_id=issue_id,
                message=message,
                read=False,
            ))
    except Exception as exc:
        logger.exception("Failed to create notification for user %s", user_id)
        return SideEffectFailure("notification", user_id, str(exc))
    return None


def emit_all(
    engine: Engine,
    messages: list[tuple[str, str, str | None]],
) -> list[SideEffectFailure]:
    """Emit ``(user_id, message, issue_id)`` triples; return any failures."""
    failures: list[SideEffectFailure] = []
    for user_id, message, issue_id in messages:
        failure = emit(engine, user_id, message, issue_id)
        if failure is not None:
            failures.append(failure)
    return failures


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine,
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[dict]:
    """Return the user's notifications, newest first."""
    with get_session(engine) as session:
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        if unread_only:
            query = query.where(Notification.read.is_(False))
        rows = session.scalars(query).all()
        return [
            {
                "id": n.id,
                "message": n.message,
                "issue_id": n.issue_id,
                "read": n.read,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ]


def unread_count(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        ) or 0


def mark_read(engine: Engine, notification_id: int, user_id: str) -> bool:
    """Mark one notification read.  Scoped to its owner.

    Returns ``False`` if no notification with that id belongs to *user_id*.
    """
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
            .values(read=True)
        )
        return result.rowcount > 0


def mark_all_read(engine: Engine, user_id: str) -> int:
    """Mark every unread notification for *user_id* read; return the count."""
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
        )
        return result.rowcount
