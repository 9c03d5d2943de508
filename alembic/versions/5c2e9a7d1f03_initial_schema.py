"""Initial schema: users, badges, issues, audit trail, notifications

Revision ID: 5c2e9a7d1f03
Revises:
Create Date: 2026-10-18 09:12:41.208311

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e9a7d1f03'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
    )


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="citizen"),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("ix_users_role_points", "users", ["role", "points"])

    # --- badges / user_badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("points_required", sa.Integer, nullable=False),
        sa.Column("icon", sa.String(50), nullable=False),
        _created_at(),
    )
    op.create_index("ix_badges_points_required", "badges", ["points_required"])

    op.create_table(
        "user_badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "badge_id", sa.String(36),
            sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    # --- categories / authorities ---
    op.create_table(
        "issue_categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("department", sa.String(100), nullable=False),
        sa.Column("default_estimate_hours", sa.Integer, server_default="72"),
        _created_at(),
    )

    op.create_table(
        "authorities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "category_id", sa.String(36),
            sa.ForeignKey("issue_categories.id", ondelete="CASCADE"), nullable=False,
        ),
        _created_at(),
        sa.UniqueConstraint("user_id", "category_id", name="uq_authorities_user_category"),
    )

    # --- issues ---
    op.create_table(
        "issues",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column(
            "category_id", sa.String(36),
            sa.ForeignKey("issue_categories.id"), nullable=False,
        ),
        sa.Column("location_lat", sa.Float, nullable=False),
        sa.Column("location_lng", sa.Float, nullable=False),
        sa.Column("location_address", sa.String(500), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "posted_by_user_id", sa.String(36),
            sa.ForeignKey("users.id"), nullable=False,
        ),
        sa.Column(
            "assigned_to_authority_id", sa.String(36),
            sa.ForeignKey("users.id"), nullable=True,
        ),
        sa.Column("estimated_resolution_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_resolution_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("photos", sa.JSON, nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_issues_category_status", "issues", ["category_id", "status"])
    op.create_index("ix_issues_posted_by", "issues", ["posted_by_user_id"])

    op.create_table(
        "issue_updates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("issue_id", sa.String(36), sa.ForeignKey("issues.id"), nullable=False),
        sa.Column("authority_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("status_change", sa.String(20), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_issue_updates_issue_time", "issue_updates", ["issue_id", "created_at"],
    )

    op.create_table(
        "issue_followers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "issue_id", sa.String(36),
            sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False,
        ),
        _created_at(),
        sa.Column("unfollowed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "issue_id", name="uq_issue_followers_user_issue"),
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "issue_id", sa.String(36),
            sa.ForeignKey("issues.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "ix_notifications_user_time", "notifications", ["user_id", "created_at"],
    )

    # --- settings / admin_log ---
    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )


def downgrade() -> None:
    for table in (
        "admin_log",
        "settings",
        "notifications",
        "issue_followers",
        "issue_updates",
        "issues",
        "authorities",
        "issue_categories",
        "user_badges",
        "badges",
        "users",
    ):
        op.drop_table(table)
