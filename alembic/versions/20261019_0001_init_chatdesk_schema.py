"""init chatdesk schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLATFORMS = ("facebook", "line", "telegram", "instagram", "whatsapp", "web")
ENUMS: dict[str, tuple[str, ...]] = {
    "user_role": ("admin", "agent"),
    "platform": PLATFORMS,
    "conversation_status": ("active", "pending", "resolved", "closed"),
    "conversation_priority": ("low", "medium", "high", "urgent"),
    "message_sender": ("customer", "agent", "ai"),
    "message_type": ("text", "image", "file", "audio", "video", "sticker", "location"),
    "instruction_category": ("greeting", "product", "support", "sales", "general", "custom"),
    "thread_outcome": ("purchased", "pending", "unknown"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False, server_default=sa.text("'agent'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "platform_credentials",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("credentials", sa.JSON(), nullable=False),
        sa.Column("webhook_url", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_platform_credentials_owner_id", "platform_credentials", ["owner_id"], unique=False
    )
    op.create_index(
        "ix_platform_credentials_platform", "platform_credentials", ["platform"], unique=False
    )

    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", sa.String(length=200), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=False),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("platform_id", sa.String(length=200), nullable=False),
        sa.Column("platform_credential_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("open_key", sa.String(length=260), nullable=True),
        sa.Column(
            "status",
            _enum("conversation_status"),
            nullable=False,
            server_default=sa.text("'active'"),
        ),
        sa.Column(
            "priority",
            _enum("conversation_priority"),
            nullable=False,
            server_default=sa.text("'medium'"),
        ),
        sa.Column("assigned_agent_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("ai_responses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("human_responses", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "last_message_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["platform_credential_id"], ["platform_credentials.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["assigned_agent_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("open_key", name="uq_conversations_open_key"),
    )
    op.create_index(
        "ix_conversations_customer_platform",
        "conversations",
        ["customer_id", "platform"],
        unique=False,
    )
    op.create_index(
        "ix_conversations_status_agent",
        "conversations",
        ["status", "assigned_agent_id"],
        unique=False,
    )
    op.create_index(
        "ix_conversations_priority_status", "conversations", ["priority", "status"], unique=False
    )
    op.create_index("ix_conversations_platform_id", "conversations", ["platform_id"], unique=False)
    op.create_index(
        "ix_conversations_platform_credential_id",
        "conversations",
        ["platform_credential_id"],
        unique=False,
    )
    op.create_index(
        "ix_conversations_last_message_at", "conversations", ["last_message_at"], unique=False
    )

    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("conversation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("sender", _enum("message_sender"), nullable=False),
        sa.Column("sender_id", sa.String(length=200), nullable=True),
        sa.Column("sender_name", sa.String(length=200), nullable=True),
        sa.Column("type", _enum("message_type"), nullable=False, server_default=sa.text("'text'")),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("external_id", sa.String(length=200), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"], unique=False)

    op.create_table(
        "instructions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "category",
            _enum("instruction_category"),
            nullable=False,
            server_default=sa.text("'general'"),
        ),
        sa.Column("platforms", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_instructions_active_category",
        "instructions",
        ["is_active", "category"],
        unique=False,
    )

    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_id", sa.String(length=200), nullable=False),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("platform_credential_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "extracted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["platform_credential_id"], ["platform_credentials.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_orders_customer_platform", "orders", ["customer_id", "platform"], unique=False
    )

    op.create_table(
        "conversation_threads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("thread_key", sa.String(length=40), nullable=False),
        sa.Column("customer_id", sa.String(length=200), nullable=False),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("platform_credential_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("bot_name", sa.String(length=120), nullable=True),
        sa.Column("total_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("assistant_messages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("first_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_order", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("order_ids", sa.JSON(), nullable=False),
        sa.Column("ordered_products", sa.JSON(), nullable=False),
        sa.Column(
            "order_status", sa.String(length=40), nullable=False, server_default=sa.text("'unknown'")
        ),
        sa.Column("total_order_amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "outcome", _enum("thread_outcome"), nullable=False, server_default=sa.text("'unknown'")
        ),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("thread_key", name="uq_conversation_threads_thread_key"),
    )
    op.create_index(
        "ix_conversation_threads_customer_id",
        "conversation_threads",
        ["customer_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_conversation_threads_customer_id", table_name="conversation_threads")
    op.drop_table("conversation_threads")

    op.drop_index("ix_orders_customer_platform", table_name="orders")
    op.drop_table("orders")

    op.drop_index("ix_instructions_active_category", table_name="instructions")
    op.drop_table("instructions")

    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")

    for index_name in (
        "ix_conversations_last_message_at",
        "ix_conversations_platform_credential_id",
        "ix_conversations_platform_id",
        "ix_conversations_priority_status",
        "ix_conversations_status_agent",
        "ix_conversations_customer_platform",
    ):
        op.drop_index(index_name, table_name="conversations")
    op.drop_table("conversations")

    op.drop_index("ix_platform_credentials_platform", table_name="platform_credentials")
    op.drop_index("ix_platform_credentials_owner_id", table_name="platform_credentials")
    op.drop_table("platform_credentials")

    op.drop_table("users")

    bind = op.get_bind()
    for name in reversed(ENUMS):
        sa.Enum(name=name).drop(bind, checkfirst=True)
