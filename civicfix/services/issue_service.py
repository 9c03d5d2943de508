"""
civicfix.services.issue_service — Issue Lifecycle & Audit Trail
================================================================

Shared service module called by the authority and citizen endpoints.

Every status transition (single or bulk) follows the same shape:
  1. Validate input — reject before any write.
  2. Primary transaction: update each issue's status and append exactly
     one ``IssueUpdate`` row per issue.  Commit or raise ``PrimaryFailure``.
  3. Best-effort side effects, per issue: reporter points via the ledger
     (``resolved`` → +20, ``fake`` → −15) and a status notification.

Side-effect failures are collected on the returned
:class:`~civicfix.engine.outcomes.TransitionResult`; they never roll back
or block the transition itself.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from civicfix.constants import ISSUE_ASSIGNED_MESSAGE, STATUS_CHANGED_MESSAGE, status_text
from civicfix.database.engine import get_session
from civicfix.database.models import (
    Authority,
    Issue,
    IssueCategory,
    IssueFollower,
    IssueStatus,
    IssueUpdate,
    User,
)
from civicfix.engine.outcomes import TransitionResult
from civicfix.engine.points import PointsAction
from civicfix.engine.status import plan_transition
from civicfix.errors import PrimaryFailure, ValidationFailure
from civicfix.services import ledger_service, notification_service
from civicfix.services.settings_service import points_for

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
def create_issue(
    engine: Engine,
    *,
    user_id: str,
    title: str,
    description: str,
    category_id: str,
    location_lat: float,
    location_lng: float,
    location_address: str,
    photos: list[str],
) -> dict:
    """Create an issue, auto-assign it, and award the reporter.

    The first authority mapped to the category is assigned and notified.
    Returns ``{"issue_id", "assigned_to", "ledger"}``.
    """
    photos = [p for p in photos or [] if p]
    if not photos:
        raise ValidationFailure("At least one photo is required")
    if not all([title, description, category_id, location_address]):
        raise ValidationFailure("All fields are required")
    if location_lat is None or location_lng is None:
        raise ValidationFailure("All fields are required")

    try:
        with get_session(engine) as session:
            if session.get(IssueCategory, category_id) is None:
                raise ValidationFailure(f"Unknown category {category_id!r}")

            assigned_to = session.scalar(
                select(Authority.user_id)
                .where(Authority.category_id == category_id)
                .order_by(Authority.created_at, Authority.id)
                .limit(1)
            )
            issue = Issue(
                title=title,
                description=description,
                category_id=category_id,
                location_lat=location_lat,
                location_lng=location_lng,
                location_address=location_address,
                status=IssueStatus.PENDING.value,
                posted_by_user_id=user_id,
                assigned_to_authority_id=assigned_to,
                photos=photos,
            )
            session.add(issue)
            session.flush()
            issue_id = issue.id
    except SQLAlchemyError as exc:
        logger.exception("Failed to create issue for user %s", user_id)
        raise PrimaryFailure("Failed to create issue") from exc

    logger.info("Issue %s reported by %s (assigned to %s)", issue_id, user_id, assigned_to)

    ledger = ledger_service.apply_points_action(
        engine, user_id, PointsAction.POST_ISSUE, issue_id=issue_id,
    )
    if assigned_to:
        failure = notification_service.emit(
            engine, assigned_to, ISSUE_ASSIGNED_MESSAGE.format(title=title), issue_id,
        )
        if failure is not None:
            ledger.failures.append(failure)

    return {"issue_id": issue_id, "assigned_to": assigned_to, "ledger": ledger}


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------
def update_issue_status(
    engine: Engine,
    issue_id: str,
    status: str,
    *,
    authority_id: str,
    comment: str | None = None,
    estimated_date: datetime | None = None,
) -> TransitionResult:
    """Move one issue to *status* and record it in the audit trail."""
    return _transition(
        engine,
        [issue_id],
        status,
        authority_id=authority_id,
        comment=comment,
        estimated_date=estimated_date,
    )


def bulk_update_status(
    engine: Engine,
    issue_ids: list[str],
    status: str,
    *,
    authority_id: str,
    comment: str | None = None,
) -> TransitionResult:
    """Move many issues to one *status* with one shared comment.

    Each issue gets its own audit row, its own ledger award and its own
    notification, all linked to that issue.
    """
    return _transition(
        engine, issue_ids, status, authority_id=authority_id, comment=comment,
    )


def _transition(
    engine: Engine,
    issue_ids: list[str],
    status: str,
    *,
    authority_id: str,
    comment: str | None,
    estimated_date: datetime | None = None,
) -> TransitionResult:
    plan = plan_transition(status)
    ids = list(dict.fromkeys(i.strip() for i in issue_ids or [] if i and i.strip()))
    if not ids:
        raise ValidationFailure("Issue IDs and status are required")
    if not authority_id:
        raise ValidationFailure("An acting authority is required")

    now = datetime.now(UTC)
    try:
        with get_session(engine) as session:
            issues = session.scalars(
                select(Issue).where(Issue.id.in_(ids), Issue.deleted_at.is_(None))
            ).all()
            by_id = {i.id: i for i in issues}
            affected = [by_id[i] for i in ids if i in by_id]

            for issue in affected:
                issue.status = plan.status.value
                issue.updated_at = now
                if plan.sets_resolution_date:
                    issue.actual_resolution_date = now
                if estimated_date is not None:
                    issue.estimated_resolution_date = estimated_date
                # Recorded even when the status is unchanged.
                session.add(IssueUpdate(
                    issue_id=issue.id,
                    authority_id=authority_id,
                    comment=comment or None,
                    status_change=plan.status.value,
                    created_at=now,
                ))

            targets = [(i.id, i.posted_by_user_id, i.title) for i in affected]
    except SQLAlchemyError as exc:
        logger.exception("Failed to update %d issue(s) to %s", len(ids), plan.status)
        raise PrimaryFailure("Failed to update issues") from exc

    skipped = len(ids) - len(targets)
    logger.info(
        "Authority %s moved %d issue(s) to %s%s",
        authority_id, len(targets), plan.status,
        f" ({skipped} missing or deleted)" if skipped else "",
    )

    result = TransitionResult(status=plan.status.value, issue_ids=[t[0] for t in targets])
    label = status_text(plan.status)

    for issue_id, reporter_id, title in targets:
        if plan.points_action is not None:
            ledger = ledger_service.apply_points_action(
                engine, reporter_id, plan.points_action, issue_id=issue_id,
            )
            result.failures.extend(ledger.failures)

        failure = notification_service.emit(
            engine,
            reporter_id,
            STATUS_CHANGED_MESSAGE.format(title=title, status=label),
            issue_id,
        )
        if failure is not None:
            result.failures.append(failure)

    return result


# ---------------------------------------------------------------------------
# Following
# ---------------------------------------------------------------------------
def toggle_follow(engine: Engine, issue_id: str, user_id: str) -> bool | None:
    """Follow *issue_id* if not already followed, otherwise unfollow.

    Returns the new following state, or ``None`` if the issue is missing or
    soft-deleted.  The first follow of an issue by a user awards
    ``points.follow_issue`` when that setting is non-zero; re-following
    after an unfollow does not.
    """
    with get_session(engine) as session:
        live = select(Issue.id).where(Issue.id == issue_id, Issue.deleted_at.is_(None))
        if session.scalar(live) is None:
            return None
        existing = session.scalar(
            select(IssueFollower).where(
                IssueFollower.issue_id == issue_id,
                IssueFollower.user_id == user_id,
            )
        )
        if existing is not None:
            if existing.unfollowed_at is None:
                existing.unfollowed_at = datetime.now(UTC)
                return False
            existing.unfollowed_at = None
            return True

        session.add(IssueFollower(issue_id=issue_id, user_id=user_id))
        award = points_for(session, PointsAction.FOLLOW_ISSUE)
        try:
            session.flush()
        except IntegrityError:
            # Concurrent follow already inserted the row.
            session.rollback()
            return True

    if award:
        ledger_service.apply_points_action(
            engine, user_id, PointsAction.FOLLOW_ISSUE, award, issue_id=issue_id,
        )
    return True


# ---------------------------------------------------------------------------
# Audit trail reads & metrics
# ---------------------------------------------------------------------------
def get_issue_history(engine: Engine, issue_id: str) -> list[dict]:
    """The issue's audit trail in creation order."""
    with get_session(engine) as session:
        rows = session.execute(
            select(IssueUpdate, User.name)
            .outerjoin(User, User.id == IssueUpdate.authority_id)
            .where(IssueUpdate.issue_id == issue_id)
            .order_by(IssueUpdate.created_at, IssueUpdate.id)
        ).all()
        return [
            {
                "id": u.id,
                "issue_id": u.issue_id,
                "authority_id": u.authority_id,
                "authority_name": name,
                "comment": u.comment,
                "status_change": u.status_change,
                "created_at": u.created_at.isoformat() if u.created_at else None,
            }
            for u, name in rows
        ]


def _hours_between(start: datetime, end: datetime) -> float:
    if (start.tzinfo is None) != (end.tzinfo is None):
        start, end = start.replace(tzinfo=None), end.replace(tzinfo=None)
    return (end - start).total_seconds() / 3600


def authority_metrics(engine: Engine, authority_id: str) -> dict:
    """Dashboard numbers for the categories assigned to *authority_id*.

    ``average_resolution_hours`` spans creation → resolution for resolved
    issues; ``average_response_hours`` spans creation → first audit row.
    """
    with get_session(engine) as session:
        category_ids = session.scalars(
            select(Authority.category_id).where(Authority.user_id == authority_id)
        ).all()
        if not category_ids:
            issues = []
        else:
            issues = session.scalars(
                select(Issue).where(
                    Issue.category_id.in_(category_ids),
                    Issue.deleted_at.is_(None),
                )
            ).all()

        by_status = {s.value: 0 for s in IssueStatus}
        for issue in issues:
            by_status[issue.status] = by_status.get(issue.status, 0) + 1

        resolution_hours = [
            _hours_between(i.created_at, i.actual_resolution_date)
            for i in issues
            if i.status == IssueStatus.RESOLVED and i.actual_resolution_date and i.created_at
        ]

        first_updates: dict[str, datetime] = {}
        if issues:
            first_updates = dict(session.execute(
                select(IssueUpdate.issue_id, func.min(IssueUpdate.created_at))
                .where(IssueUpdate.issue_id.in_([i.id for i in issues]))
                .group_by(IssueUpdate.issue_id)
            ).all())
        response_hours = [
            _hours_between(i.created_at, first_updates[i.id])
            for i in issues
            if i.id in first_updates and first_updates[i.id] and i.created_at
        ]

        categories = session.execute(
            select(IssueCategory.id, IssueCategory.name, IssueCategory.department)
            .where(IssueCategory.id.in_(category_ids))
        ).all() if category_ids else []

    return {
        "total_issues": len(issues),
        "by_status": by_status,
        "average_resolution_hours": (
            sum(resolution_hours) / len(resolution_hours) if resolution_hours else 0.0
        ),
        "average_response_hours": (
            sum(response_hours) / len(response_hours) if response_hours else 0.0
        ),
        "assigned_categories": [
            {
                "name": c.name,
                "department": c.department,
                "issue_count": sum(1 for i in issues if i.category_id == c.id),
            }
            for c in categories
        ],
    }
