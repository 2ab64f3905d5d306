"""initial schema - accounts, settings, processed-message ledger, subscriptions

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

The ledger's unique (user_id, gmail_message_id) index is what makes
concurrent ingestion runs safe; never drop it.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

subscription_type = sa.Enum("trial", "subscription", name="subscription_type")
subscription_status = sa.Enum(
    "active", "expiring_soon", "expired", "cancelled", name="subscription_status"
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("name", sa.String(255)),
        sa.Column("image", sa.String(500)),
        sa.Column("google_access_token", sa.Text()),
        sa.Column("google_refresh_token", sa.Text()),
        sa.Column("google_token_expiry", sa.DateTime()),
        sa.Column("gmail_history_id", sa.String(64)),
        sa.Column("gmail_watch_expiry", sa.DateTime()),
        sa.Column("last_sync_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("reminder_days_before", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )

    op.create_table(
        "processed_emails",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("gmail_message_id", sa.Text(), nullable=False),
        sa.Column("is_subscription", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime()),
    )
    op.create_index(
        "ix_processed_user_message", "processed_emails",
        ["user_id", "gmail_message_id"], unique=True,
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("service_name", sa.String(255), nullable=False),
        sa.Column("type", subscription_type, nullable=False),
        sa.Column("detected_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime()),
        sa.Column("calendar_event_id", sa.String(255)),
        sa.Column("status", subscription_status, nullable=False, server_default="active"),
        sa.Column("email_subject", sa.Text(), nullable=False),
        sa.Column("email_snippet", sa.Text()),
        sa.Column("confidence", sa.Integer()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index(
        "ix_subscriptions_user_subject", "subscriptions", ["user_id", "email_subject"]
    )


def downgrade() -> None:
    """Drop all tables. ⚠️ DESTRUCTIVE — only for dev/test environments."""
    op.drop_index("ix_subscriptions_user_subject", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_processed_user_message", table_name="processed_emails")
    op.drop_table("processed_emails")
    op.drop_table("settings")
    op.drop_table("users")
    subscription_status.drop(op.get_bind(), checkfirst=True)
    subscription_type.drop(op.get_bind(), checkfirst=True)
