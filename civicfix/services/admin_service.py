"""
civicfix.services.admin_service — Admin Mutation Service Layer
===============================================================

Audited mutations of the badge catalogue, issue categories and authority
assignments.  Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

Editing a badge threshold does not touch ``user_badges``; run the badge
repair afterwards to bring held badges back in line.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from civicfix.database.models import (
    AdminLog,
    Authority,
    Badge,
    Issue,
    IssueCategory,
    User,
    UserBadge,
    UserRole,
)
from civicfix.errors import ValidationFailure

logger = logging.getLogger(__name__)

BADGE_FIELDS = ("name", "description", "points_required", "icon")
CATEGORY_FIELDS = ("name", "description", "department", "default_estimate_hours")


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Badge catalogue
# ---------------------------------------------------------------------------

def list_badges(engine) -> list[dict]:
    """All badges, lowest threshold first, with how many users hold each."""
    with Session(engine) as session:
        rows = session.execute(
            select(Badge, func.count(UserBadge.id))
            .outerjoin(UserBadge, UserBadge.badge_id == Badge.id)
            .group_by(Badge.id)
            .order_by(Badge.points_required, Badge.name)
        ).all()
        return [
            {
                "id": b.id,
                "name": b.name,
                "description": b.description,
                "points_required": b.points_required,
                "icon": b.icon,
                "user_count": count,
                "created_at": b.created_at.isoformat() if b.created_at else None,
            }
            for b, count in rows
        ]


def _check_badge_name(session: Session, name: str, badge_id: str | None = None) -> None:
    if not name or not name.strip():
        raise ValidationFailure("Badge name is required")
    clash = session.scalar(select(Badge.id).where(Badge.name == name))
    if clash is not None and clash != badge_id:
        raise ValidationFailure(f"A badge named {name!r} already exists")


def create_badge(
    engine,
    *,
    name: str,
    points_required: int,
    icon: str,
    description: str | None = None,
    actor_id: str,
) -> Badge:
    with Session(engine, expire_on_commit=False) as session:
        _check_badge_name(session, name)
        badge = Badge(
            name=name,
            description=description,
            points_required=points_required,
            icon=icon,
        )
        session.add(badge)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="CREATE",
            target_table="badges",
            target_id=badge.id,
            before=None,
            after=_row_to_dict(badge),
        )
        session.commit()
        session.refresh(badge)
        session.expunge(badge)
        logger.info("Admin %s created badge %r (%d pts)", actor_id, name, points_required)
        return badge


def update_badge(engine, badge_id: str, *, actor_id: str, **kwargs: Any) -> Badge | None:
    """Apply *kwargs* (restricted to badge fields) to *badge_id*.

    Returns the updated (expunged) badge, or ``None`` if not found.
    """
    with Session(engine, expire_on_commit=False) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return None
        before = _row_to_dict(badge)
        if "name" in kwargs:
            _check_badge_name(session, kwargs["name"], badge.id)
        for key, value in kwargs.items():
            if key in BADGE_FIELDS:
                setattr(badge, key, value)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="UPDATE",
            target_table="badges",
            target_id=badge.id,
            before=before,
            after=_row_to_dict(badge),
        )
        session.commit()
        session.refresh(badge)
        session.expunge(badge)
        return badge


def delete_badge(engine, badge_id: str, *, actor_id: str) -> bool:
    """Delete a badge and every holding of it.

    Returns ``True`` if the badge existed.
    """
    with Session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_table="badges",
            target_id=badge.id,
            before=_row_to_dict(badge),
            after=None,
        )
        session.delete(badge)
        session.commit()
        logger.info("Admin %s deleted badge %s", actor_id, badge_id)
        return True


# ---------------------------------------------------------------------------
# Issue categories
# ---------------------------------------------------------------------------

def list_categories(engine) -> list[dict]:
    """All categories by name, with issue and authority counts."""
    with Session(engine) as session:
        issue_counts = dict(session.execute(
            select(Issue.category_id, func.count(Issue.id))
            .where(Issue.deleted_at.is_(None))
            .group_by(Issue.category_id)
        ).all())
        authority_counts = dict(session.execute(
            select(Authority.category_id, func.count(Authority.id))
            .group_by(Authority.category_id)
        ).all())
        categories = session.scalars(select(IssueCategory).order_by(IssueCategory.name)).all()
        return [
            _row_to_dict(c) | {
                "issue_count": issue_counts.get(c.id, 0),
                "authority_count": authority_counts.get(c.id, 0),
            }
            for c in categories
        ]


def _validate_category(session: Session, values: dict, category_id: str | None = None) -> None:
    for field in ("name", "department"):
        if field in values and not (values[field] or "").strip():
            raise ValidationFailure(f"Category {field} is required")
    if "default_estimate_hours" in values:
        hours = values["default_estimate_hours"]
        if not isinstance(hours, int) or hours < 1:
            raise ValidationFailure("default_estimate_hours must be a positive integer")
    if "name" in values:
        clash = session.scalar(
            select(IssueCategory.id).where(IssueCategory.name == values["name"])
        )
        if clash is not None and clash != category_id:
            raise ValidationFailure(f"A category named {values['name']!r} already exists")


def create_category(
    engine,
    *,
    name: str,
    department: str,
    default_estimate_hours: int = 72,
    description: str | None = None,
    actor_id: str,
) -> IssueCategory:
    values = {
        "name": name,
        "department": department,
        "default_estimate_hours": default_estimate_hours,
        "description": description,
    }
    with Session(engine, expire_on_commit=False) as session:
        _validate_category(session, values)
        category = IssueCategory(**values)
        session.add(category)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="CREATE",
            target_table="issue_categories",
            target_id=category.id,
            before=None,
            after=_row_to_dict(category),
        )
        session.commit()
        session.refresh(category)
        session.expunge(category)
        logger.info("Admin %s created category %r (%s)", actor_id, name, department)
        return category


def update_category(
    engine, category_id: str, *, actor_id: str, **kwargs: Any,
) -> IssueCategory | None:
    """Apply *kwargs* (restricted to category fields) to *category_id*.

    Returns the updated (expunged) category, or ``None`` if not found.
    """
    values = {k: v for k, v in kwargs.items() if k in CATEGORY_FIELDS}
    with Session(engine, expire_on_commit=False) as session:
        category = session.get(IssueCategory, category_id)
        if category is None:
            return None
        _validate_category(session, values, category.id)
        before = _row_to_dict(category)
        for key, value in values.items():
            setattr(category, key, value)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="UPDATE",
            target_table="issue_categories",
            target_id=category.id,
            before=before,
            after=_row_to_dict(category),
        )
        session.commit()
        session.refresh(category)
        session.expunge(category)
        return category


def delete_category(engine, category_id: str, *, actor_id: str) -> bool:
    """Delete a category and its authority assignments.

    Refused while any issue (including soft-deleted ones) references it.
    Returns ``True`` if the category existed.
    """
    with Session(engine) as session:
        category = session.get(IssueCategory, category_id)
        if category is None:
            return False
        in_use = session.scalar(
            select(func.count(Issue.id)).where(Issue.category_id == category_id)
        )
        if in_use:
            raise ValidationFailure("Cannot delete category with existing issues")
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_table="issue_categories",
            target_id=category.id,
            before=_row_to_dict(category),
            after=None,
        )
        session.execute(delete(Authority).where(Authority.category_id == category_id))
        session.delete(category)
        session.commit()
        logger.info("Admin %s deleted category %s", actor_id, category_id)
        return True


# ---------------------------------------------------------------------------
# Authority assignments
# ---------------------------------------------------------------------------

def list_authorities(engine, *, category_id: str | None = None) -> list[dict]:
    """Assignments in the order new reports pick them, oldest first."""
    with Session(engine) as session:
        query = (
            select(Authority, User.name, IssueCategory.name)
            .join(User, User.id == Authority.user_id)
            .join(IssueCategory, IssueCategory.id == Authority.category_id)
            .order_by(IssueCategory.name, Authority.created_at, Authority.id)
        )
        if category_id is not None:
            query = query.where(Authority.category_id == category_id)
        return [
            _row_to_dict(a) | {"user_name": user_name, "category_name": category_name}
            for a, user_name, category_name in session.execute(query).all()
        ]


def assign_authority(engine, *, user_id: str, category_id: str, actor_id: str) -> Authority:
    """Map an authority user to a category so new reports there reach them."""
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None or user.role != UserRole.AUTHORITY.value:
            raise ValidationFailure(f"User {user_id!r} is not an authority")
        if session.get(IssueCategory, category_id) is None:
            raise ValidationFailure(f"Unknown category {category_id!r}")
        duplicate = session.scalar(
            select(Authority.id).where(
                Authority.user_id == user_id, Authority.category_id == category_id,
            )
        )
        if duplicate is not None:
            raise ValidationFailure("User is already an authority for this category")

        authority = Authority(user_id=user_id, category_id=category_id)
        session.add(authority)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="CREATE",
            target_table="authorities",
            target_id=authority.id,
            before=None,
            after=_row_to_dict(authority),
        )
        session.commit()
        session.refresh(authority)
        session.expunge(authority)
        logger.info("Admin %s assigned %s to category %s", actor_id, user_id, category_id)
        return authority


def remove_authority(engine, authority_id: str, *, actor_id: str) -> bool:
    """Drop an assignment.  Issues already assigned keep their authority.

    Returns ``True`` if the assignment existed.
    """
    with Session(engine) as session:
        authority = session.get(Authority, authority_id)
        if authority is None:
            return False
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_table="authorities",
            target_id=authority.id,
            before=_row_to_dict(authority),
            after=None,
        )
        session.delete(authority)
        session.commit()
        logger.info("Admin %s removed authority assignment %s", actor_id, authority_id)
        return True


def get_audit_log(engine, *, limit: int = 50, offset: int = 0) -> list[dict]:
    with Session(engine) as session:
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
        return [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ]
