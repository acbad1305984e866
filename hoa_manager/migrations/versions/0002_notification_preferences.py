"""notification preferences

Revision ID: 0002_notification_preferences
Revises: 0001_initial_schema
Create Date: 2026-09-28 10:12:00.000000
"""

import sqlalchemy as sa
from alembic import op


def _has_table(inspector, name: str) -> bool:
    return inspector.has_table(name)


def _ensure_index(inspector, table: str, name: str, columns: list[str]) -> None:
    existing = {index["name"] for index in inspector.get_indexes(table)}
    if name not in existing:
        op.create_index(name, table, columns)


revision = "0002_notification_preferences"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _has_table(inspector, "notification_preferences"):
        op.create_table(
            "notification_preferences",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False),
            sa.Column("payment_reminders", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("maintenance_updates", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("announcements", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("system_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("push_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", name="uq_notification_preferences_user"),
        )
        inspector = sa.inspect(bind)

    _ensure_index(inspector, "notification_preferences", "ix_notification_preferences_id", ["id"])


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if _has_table(inspector, "notification_preferences"):
        existing_indexes = {index["name"] for index in inspector.get_indexes("notification_preferences")}
        if "ix_notification_preferences_id" in existing_indexes:
            op.drop_index("ix_notification_preferences_id", table_name="notification_preferences")
        op.drop_table("notification_preferences")
