"""
civicfix.services.settings_service — Settings Reads & Writes
=============================================================

Typed access to the ``settings`` table.  Point deltas for every
:class:`~civicfix.engine.points.PointsAction` are read from here.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from civicfix.database.models import AdminLog, Setting
from civicfix.engine.points import DEFAULT_POINTS, PointsAction, setting_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session.

    Returns *default* when the key does not exist.  Values that are not
    valid JSON are returned as the raw stored string.
    """
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def _as_int(key: str, value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Setting %s has non-integer value %r, using default %d", key, value, default)
        return default


def points_for(session: Session, action: PointsAction | str) -> int:
    """Configured point delta for *action*, falling back to the default."""
    action = PointsAction(action)
    key = setting_key(action)
    return _as_int(key, get_setting_value(session, key, DEFAULT_POINTS[action]), DEFAULT_POINTS[action])


def get_value(engine, key: str, default=None):
    """Engine-level convenience wrapper around :func:`get_setting_value`."""
    with Session(engine) as session:
        return get_setting_value(session, key, default)


def get_int(engine, key: str, default: int, *, minimum: int | None = None) -> int:
    """Integer setting *key*, or *default* when missing or not an integer.

    With *minimum*, smaller values are logged and raised to it.
    """
    value = _as_int(key, get_value(engine, key, default), default)
    if minimum is not None and value < minimum:
        logger.warning("Setting %s=%d is below %d, using %d", key, value, minimum, minimum)
        return minimum
    return value


def get_all_settings(engine) -> list[Setting]:
    """Fetch every setting row, ordered by category then key."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def bulk_upsert(engine, settings: list[dict], *, actor_id: str | None = None) -> int:
    """Upsert many settings at once.

    Each dict should have at least ``key`` and ``value``.
    Optional: ``category``, ``description``.

    When *actor_id* is provided, each change is recorded in ``admin_log``
    with before/after snapshots.

    Returns the number of rows touched.
    """
    count = 0
    with Session(engine) as session:
        for item in settings:
            key = item["key"]
            value_json = json.dumps(item["value"])
            existing = session.get(Setting, key)

            before_snapshot: dict | None = None
            if existing and actor_id is not None:
                before_snapshot = {
                    "key": existing.key,
                    "value": json.loads(existing.value_json) if existing.value_json else None,
                    "category": existing.category,
                    "description": existing.description,
                }

            if existing:
                existing.value_json = value_json
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=value_json,
                    category=item.get("category", "general"),
                    description=item.get("description"),
                )
                session.add(existing)

            if actor_id is not None:
                after_snapshot = {
                    "key": key,
                    "value": item["value"],
                    "category": existing.category,
                    "description": existing.description,
                }
                if before_snapshot != after_snapshot:
                    session.add(AdminLog(
                        actor_id=actor_id,
                        action_type="UPDATE" if before_snapshot else "CREATE",
                        target_table="settings",
                        target_id=key,
                        before_snapshot=before_snapshot,
                        after_snapshot=after_snapshot,
                    ))

            count += 1
        session.commit()

    logger.info("Upserted %d settings", count)
    return count


def setting_to_dict(row: Setting) -> dict[str, Any]:
    return {
        "key": row.key,
        "value": json.loads(row.value_json) if row.value_json else None,
        "category": row.category,
        "description": row.description,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }
