"""Conversation store: chats and their append-only message sequences."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from controllers.errors import ChatNotFound, InvalidRequest
from models.chat import CONTENT_TYPES, ROLES, Chat, Message

DEFAULT_TITLE = "New Chat"
_DERIVED_TITLE_LENGTH = 50
_MAX_TITLE_LENGTH = 500


def title_from_content(content: str | None) -> str:
    """Derive a chat title from the leading text of its first message."""
    text = (content or "").strip()
    return text[:_DERIVED_TITLE_LENGTH] if text else DEFAULT_TITLE


async def create_chat(db_session: AsyncSession, user_id: UUID, title: str | None) -> Chat:
    title = (title or "").strip()[:_MAX_TITLE_LENGTH] or DEFAULT_TITLE
    chat = Chat(user_id=user_id, title=title, messages=[])
    db_session.add(chat)
    await db_session.flush()
    return chat


async def append_message(
    db_session: AsyncSession,
    chat_id: UUID,
    user_id: UUID,
    role: str,
    content: str,
    content_type: str = "text",
) -> Message:
    """Append a message to the end of a chat owned by `user_id`."""
    if role not in ROLES:
        raise InvalidRequest(f"role must be one of {', '.join(ROLES)}")
    if content_type not in CONTENT_TYPES:
        raise InvalidRequest(f"type must be one of {', '.join(CONTENT_TYPES)}")

    owned = await db_session.scalar(
        select(Chat.id).where(Chat.id == chat_id, Chat.user_id == user_id)
    )
    if owned is None:
        raise ChatNotFound()

    position = await db_session.scalar(
        select(func.count(Message.id)).where(Message.chat_id == chat_id)
    )
    message = Message(
        chat_id=chat_id,
        position=position or 0,
        role=role,
        content=content,
        content_type=content_type,
    )
    db_session.add(message)
    await db_session.execute(
        update(Chat)
        .where(Chat.id == chat_id)
        .values(updated_at=datetime.now(timezone.utc))
    )
    await db_session.flush()
    return message


async def list_chats(db_session: AsyncSession, user_id: UUID) -> list[Chat]:
    """All chats owned by the user, newest first, messages resolved."""
    result = await db_session.execute(
        select(Chat)
        .where(Chat.user_id == user_id)
        .order_by(Chat.created_at.desc())
        .options(selectinload(Chat.messages))
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_chat(db_session: AsyncSession, chat_id: UUID, user_id: UUID) -> Chat:
    result = await db_session.execute(
        select(Chat)
        .where(Chat.id == chat_id, Chat.user_id == user_id)
        .options(selectinload(Chat.messages))
        .execution_options(populate_existing=True)
    )
    chat = result.scalar_one_or_none()
    if chat is None:
        raise ChatNotFound()
    return chat
