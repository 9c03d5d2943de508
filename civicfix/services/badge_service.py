"""
civicfix.services.badge_service — Badge Reconciliation
=======================================================

Keeps each user's held badges equal to ``{b : b.points_required <= points}``.

How it works:
    1. Lock and load the user's points.
    2. Load the full badge catalogue and the user's held badge ids.
    3. :func:`civicfix.engine.badges.diff_badges` computes grant/revoke sets.
    4. Delete exactly the revoked rows; insert one fresh ``UserBadge`` per
       granted badge with ``earned_at = now``.
    5. After commit, emit one congratulatory notification per grant.
       Revocations are silent.

Reconciliation is idempotent: running it twice without an intervening
point change makes no changes the second time.  The batch variant
(:func:`reconcile_all_badges`) applies the same algorithm to every
citizen and is the repair tool for drift.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from civicfix.constants import BADGE_EARNED_MESSAGE
from civicfix.database.engine import get_session
from civicfix.database.models import AdminLog, Badge, User, UserBadge, UserRole
from civicfix.engine.badges import BadgeDiff, diff_badges
from civicfix.services import notification_service

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session-level helpers (shared with the points ledger)
# ---------------------------------------------------------------------------
def load_catalog(session: Session) -> list[Badge]:
    """Every badge, lowest threshold first."""
    return list(session.scalars(
        select(Badge).order_by(Badge.points_required, Badge.name)
    ).all())


def held_badge_ids(session: Session, user_id: str) -> set[str]:
    rows = session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all()
    return set(rows)


def lock_user(session: Session, user_id: str) -> User | None:
    """Load *user_id* with a row lock held until the transaction ends.

    Serialises ledger updates and reconciliation for the same user.
    SQLite ignores ``FOR UPDATE``; its writer lock gives the same effect.
    """
    return session.scalar(
        select(User).where(User.id == user_id).with_for_update()
    )


def sync_user_badges(
    session: Session,
    user: User,
    catalog: list[Badge] | None = None,
    *,
    dry_run: bool = False,
) -> tuple[BadgeDiff, list[str]]:
    """Apply the badge diff for *user* inside the caller's transaction.

    Returns the diff and the names of granted badges (for notifications).
    Nothing is committed here.
    """
    if catalog is None:
        catalog = load_catalog(session)
    by_id = {b.id: b for b in catalog}

    diff = diff_badges(user.points, catalog, held_badge_ids(session, user.id))
    if dry_run or not diff.changed:
        return diff, [by_id[bid].name for bid in diff.granted]

    if diff.revoked:
        session.execute(
            delete(UserBadge).where(
                UserBadge.user_id == user.id,
                UserBadge.badge_id.in_(diff.revoked),
            )
        )

    now = datetime.now(UTC)
    for badge_id in diff.granted:
        session.add(UserBadge(user_id=user.id, badge_id=badge_id, earned_at=now))
    session.flush()

    logger.info(
        "Badges reconciled for user %s at %d pts: +%d -%d",
        user.id, user.points, len(diff.granted), len(diff.revoked),
    )
    return diff, [by_id[bid].name for bid in diff.granted]


def badge_messages(user_id: str, granted_names: list[str]) -> list[tuple[str, str, None]]:
    return [
        (user_id, BADGE_EARNED_MESSAGE.format(badge=name), None)
        for name in granted_names
    ]


# ---------------------------------------------------------------------------
# Per-user reconciliation
# ---------------------------------------------------------------------------
def reconcile_badges(engine: Engine, user_id: str) -> BadgeDiff:
    """Reconcile one user's badges against their current points.

    Returns an empty :class:`BadgeDiff` when the user does not exist.
    """
    with get_session(engine) as session:
        user = lock_user(session, user_id)
        if user is None:
            return BadgeDiff()
        diff, granted_names = sync_user_badges(session, user)

    notification_service.emit_all(engine, badge_messages(user_id, granted_names))
    return diff


# ---------------------------------------------------------------------------
# Batch repair
# ---------------------------------------------------------------------------
def reconcile_all_badges(
    engine: Engine,
    *,
    dry_run: bool = False,
    notify: bool = False,
    actor_id: str | None = None,
) -> dict:
    """Reconcile every citizen's badges and report what changed.

    Each citizen is reconciled in its own transaction so one failure does
    not abort the run.  Grant notifications are off by default: a repair
    restores state users already believed they had.

    Returns ``{"success", "dry_run", "summary", "results"}`` where each
    result is ``{user_id, name, email, points, badges_removed, badges_added,
    eligible_badges, status}`` and status is ``already_correct``, ``fixed``
    or ``error``.
    """
    with get_session(engine) as session:
        catalog = load_catalog(session)
        citizens = session.execute(
            select(User.id, User.name, User.email)
            .where(User.role == UserRole.CITIZEN.value)
            .order_by(User.created_at, User.id)
        ).all()

    logger.info(
        "Badge repair: %d citizens, %d badges%s",
        len(citizens), len(catalog), " (dry run)" if dry_run else "",
    )

    results: list[dict] = []
    for row in citizens:
        try:
            with get_session(engine) as session:
                user = lock_user(session, row.id)
                if user is None:
                    continue
                diff, granted_names = sync_user_badges(
                    session, user, catalog, dry_run=dry_run,
                )
                points = user.points
        except Exception:
            logger.exception("Badge repair failed for user %s", row.id)
            results.append({
                "user_id": row.id,
                "name": row.name,
                "email": row.email,
                "points": None,
                "badges_removed": 0,
                "badges_added": 0,
                "eligible_badges": 0,
                "status": "error",
            })
            continue

        if notify and not dry_run:
            notification_service.emit_all(engine, badge_messages(row.id, granted_names))

        results.append({
            "user_id": row.id,
            "name": row.name,
            "email": row.email,
            "points": points,
            "badges_removed": len(diff.revoked),
            "badges_added": len(diff.granted),
            "eligible_badges": len(diff.eligible),
            "status": "fixed" if diff.changed else "already_correct",
        })

    fixed = sum(1 for r in results if r["status"] == "fixed")
    errors = sum(1 for r in results if r["status"] == "error")
    summary = {
        "total_users": len(citizens),
        "total_badges": len(catalog),
        "fixed_users": fixed,
        "failed_users": errors,
        "badge_requirements": [
            {"name": b.name, "points_required": b.points_required} for b in catalog
        ],
    }

    if actor_id is not None and not dry_run:
        with get_session(engine) as session:
            session.add(AdminLog(
                actor_id=actor_id,
                action_type="BADGE_REPAIR",
                target_table="user_badges",
                target_id=None,
                before_snapshot=None,
                after_snapshot={k: v for k, v in summary.items() if k != "badge_requirements"},
            ))

    if fixed:
        logger.warning("Badge repair corrected %d/%d citizens", fixed, len(citizens))
    else:
        logger.info("Badge repair: all %d citizens already correct", len(citizens))

    return {
        "success": errors == 0,
        "dry_run": dry_run,
        "summary": summary,
        "results": results,
        "timestamp": datetime.now(UTC).isoformat(),
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user_badges(engine: Engine, user_id: str) -> list[dict]:
    """Badges held by *user_id*, in the order they were earned."""
    with get_session(engine) as session:
        rows = session.execute(
            select(Badge, UserBadge.earned_at)
            .join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.earned_at, Badge.points_required)
        ).all()
        return [
            {
                "id": badge.id,
                "name": badge.name,
                "description": badge.description,
                "icon": badge.icon,
                "points_required": badge.points_required,
                "earned_at": earned_at.isoformat() if earned_at else None,
            }
            for badge, earned_at in rows
        ]
