"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of civicfix.api.deps, which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite has no JSONB; render it as TEXT so create_all succeeds.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from civicfix.database.models import (  # noqa: E402
    Authority,
    Badge,
    Base,
    Issue,
    IssueCategory,
    User,
    UserBadge,
    UserRole,
)
from civicfix.database.seed import seed_defaults  # noqa: E402


@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every CivicFix table and no rows.

    StaticPool keeps one shared connection so every session sees the
    same in-memory database.  With no settings rows, point deltas fall
    back to their defaults (+10 / +20 / −15 / 0).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """``db_engine`` plus the default settings, badges and categories."""
    seed_defaults(db_engine)
    return db_engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    name: str = "Asha",
    *,
    points: int = 0,
    role: UserRole = UserRole.CITIZEN,
    email: str | None = None,
) -> str:
    with Session(engine) as session:
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.org",
            role=role.value,
            points=points,
        )
        session.add(user)
        session.commit()
        return user.id


def make_badge(engine: Engine, name: str, points_required: int, icon: str = "🏅") -> str:
    with Session(engine) as session:
        badge = Badge(name=name, points_required=points_required, icon=icon)
        session.add(badge)
        session.commit()
        return badge.id


def grant_badge(engine: Engine, user_id: str, badge_id: str) -> None:
    """Insert a held-badge row directly, bypassing reconciliation."""
    with Session(engine) as session:
        session.add(UserBadge(user_id=user_id, badge_id=badge_id))
        session.commit()


def make_category(
    engine: Engine,
    name: str = "Road Potholes",
    *,
    authority_id: str | None = None,
) -> str:
    with Session(engine) as session:
        category = IssueCategory(name=name, department="Public Works")
        session.add(category)
        session.flush()
        if authority_id:
            session.add(Authority(user_id=authority_id, category_id=category.id))
        session.commit()
        return category.id


def make_issue(
    engine: Engine,
    reporter_id: str,
    category_id: str,
    title: str = "Pothole on 5th Street",
    *,
    status: str = "pending",
) -> str:
    with Session(engine) as session:
        issue = Issue(
            title=title,
            description="Deep pothole near the bus stop",
            category_id=category_id,
            location_lat=12.97,
            location_lng=77.59,
            location_address="5th Street",
            status=status,
            posted_by_user_id=reporter_id,
            photos=["https://img.example.org/1.jpg"],
        )
        session.add(issue)
        session.commit()
        return issue.id


def make_token(sub: str = "fixture-user", role: str = "citizen") -> str:
    """Create a signed JWT for *sub* with *role*."""
    import jwt

    from civicfix.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "role": role}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def client(seeded_engine: Engine):
    """FastAPI TestClient bound to the in-memory database."""
    from fastapi.testclient import TestClient

    from civicfix.api.main import app
    from civicfix.api.routes import citizen
    from civicfix.config import CivicConfig

    # Key overrides on the objects the routers hold; test_jwt_startup
    # reloads civicfix.api.deps, which replaces its module attributes.
    app.dependency_overrides[citizen.get_engine] = lambda: seeded_engine
    app.dependency_overrides[citizen.get_config] = lambda: CivicConfig(
        app_name="CivicFix", api_port=8000, leaderboard_size=10,
    )
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
