"""Create users, chats and messages tables.

Revision ID: c1d2e3f4a5b6
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from advanced_alchemy.types import GUID, DateTimeUTC


revision: str = "c1d2e3f4a5b6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("id", GUID(length=16), nullable=False),
        sa.Column("created_at", DateTimeUTC(timezone=True), nullable=False),
        sa.Column("updated_at", DateTimeUTC(timezone=True), nullable=False),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_audit_columns(),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "chats",
        *_audit_columns(),
        sa.Column("user_id", GUID(length=16), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_chats_user_created", "chats", ["user_id", "created_at"])

    op.create_table(
        "messages",
        *_audit_columns(),
        sa.Column("chat_id", GUID(length=16), sa.ForeignKey("chats.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("content_type", sa.String(10), nullable=False, server_default="text"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_chat_position", "messages", ["chat_id", "position"])


def downgrade() -> None:
    op.drop_index("ix_messages_chat_position", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_chats_user_created", table_name="chats")
    op.drop_table("chats")
    op.drop_table("users")
