"""SQLAlchemy models for chats and the messages appended to them."""

from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import GUID
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

ROLES = ("user", "assistant")
CONTENT_TYPES = ("text", "image")


class Chat(UUIDAuditBase):
    """A conversation thread owned by a single user."""

    __tablename__ = "chats"
    __table_args__ = (Index("ix_chats_user_created", "user_id", "created_at"),)

    user_id: Mapped[UUID] = mapped_column(
        GUID(length=16), ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    messages: Mapped[list["Message"]] = relationship(
        order_by="Message.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class Message(UUIDAuditBase):
    """A single user or assistant message within a chat.

    `position` is the append sequence and defines message order.
    """

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chat_position", "chat_id", "position"),)

    chat_id: Mapped[UUID] = mapped_column(
        GUID(length=16), ForeignKey("chats.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # "user" | "assistant"
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    content_type: Mapped[str] = mapped_column(String(10), default="text", nullable=False)
