"""
civicfix.database.seed — Default Data Seeder
=============================================

Baseline rows seeded on first startup so the system is immediately
usable: gameplay settings (point deltas), the badge ladder, and the
standard issue categories.

Idempotent — settings are inserted per missing key; badges and
categories are only inserted into an empty table.  Rows created or
edited by admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from civicfix.database.models import Badge, IssueCategory, Setting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "points.post_issue": (10, "points", "Points awarded for reporting an issue"),
    "points.issue_resolved": (
        20, "points", "Points awarded to the reporter when an issue is resolved",
    ),
    "points.issue_fake": (
        -15, "points", "Points applied to the reporter when an issue is marked fake",
    ),
    "points.follow_issue": (
        0, "points", "Points awarded for following an issue (0 disables the award)",
    ),
    "display.leaderboard_size": (10, "display", "Default number of leaderboard rows"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


DEFAULT_BADGES: list[dict[str, object]] = [
    {"name": "Starter", "description": "Welcome to the community!",
     "points_required": 0, "icon": "\U0001f31f"},         # 🌟
    {"name": "Active Citizen", "description": "You're making a difference!",
     "points_required": 50, "icon": "\U0001f3c6"},        # 🏆
    {"name": "Champion", "description": "A true community champion!",
     "points_required": 150, "icon": "\U0001f947"},       # 🥇
    {"name": "Hero", "description": "You're a community hero!",
     "points_required": 300, "icon": "\U0001f9b8"},       # 🦸
    {"name": "Legend", "description": "A legendary community member!",
     "points_required": 500, "icon": "\U0001f451"},       # 👑
]

DEFAULT_CATEGORIES: list[dict[str, object]] = [
    {"name": "Road Potholes", "description": "Potholes and uneven road surfaces",
     "department": "Municipal Corporation", "default_estimate_hours": 168},
    {"name": "Garbage Overflow", "description": "Uncollected waste and garbage overflow",
     "department": "Municipal Corporation", "default_estimate_hours": 24},
    {"name": "Streetlight Issues", "description": "Non-working or flickering streetlights",
     "department": "Electricity Board", "default_estimate_hours": 72},
    {"name": "Traffic Signal Problems", "description": "Malfunctioning traffic signals",
     "department": "Traffic Police", "default_estimate_hours": 48},
    {"name": "Water Supply Issues", "description": "Leaking taps, burst pipelines",
     "department": "Water Supply Board", "default_estimate_hours": 24},
    {"name": "Public Toilet Issues",
     "description": "Cleanliness and availability of public toilets",
     "department": "Municipal Corporation", "default_estimate_hours": 12},
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def _seed_settings(session: Session) -> int:
    inserted = 0
    for key, (value, category, desc) in DEFAULT_SETTINGS.items():
        if session.get(Setting, key) is None:
            session.add(Setting(
                key=key,
                value_json=json.dumps(value),
                category=category,
                description=desc,
            ))
            inserted += 1
    return inserted


def _seed_badges(session: Session) -> int:
    if session.scalar(select(Badge.id).limit(1)):
        logger.info("Badges already seeded — skipping.")
        return 0
    for data in DEFAULT_BADGES:
        session.add(Badge(**data))
    return len(DEFAULT_BADGES)


def _seed_categories(session: Session) -> int:
    if session.scalar(select(IssueCategory.id).limit(1)):
        return 0
    for data in DEFAULT_CATEGORIES:
        session.add(IssueCategory(**data))
    return len(DEFAULT_CATEGORIES)


def seed_defaults(engine: Engine) -> dict[str, int]:
    """Insert default settings, badges and categories that don't yet exist.

    Returns a count of inserted rows per kind.
    """
    session = Session(engine)
    try:
        counts = {
            "settings": _seed_settings(session),
            "badges": _seed_badges(session),
            "categories": _seed_categories(session),
        }
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if any(counts.values()):
        logger.info(
            "Seeded %d settings, %d badges, %d categories.",
            counts["settings"], counts["badges"], counts["categories"],
        )
    return counts
