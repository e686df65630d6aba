"""Tests for the conversation store."""

import pytest

from controllers.conversations import (
    DEFAULT_TITLE,
    append_message,
    create_chat,
    get_chat,
    list_chats,
    title_from_content,
)
from controllers.errors import ChatNotFound, InvalidRequest
from models.user import User


async def _user(db_session, name: str) -> User:
    user = User(username=name, email=f"{name}@x.com", password_hash="unused")
    db_session.add(user)
    await db_session.flush()
    return user


class TestTitles:
    def test_from_content(self):
        assert title_from_content("  hello world  ") == "hello world"

    def test_clipped(self):
        assert title_from_content("x" * 80) == "x" * 50

    @pytest.mark.parametrize("content", [None, "", "   "])
    def test_default(self, content):
        assert title_from_content(content) == DEFAULT_TITLE


class TestAppendAndRead:
    @pytest.mark.asyncio
    async def test_messages_keep_append_order(self, db_session):
        owner = await _user(db_session, "a")
        chat = await create_chat(db_session, owner.id, "T")
        sent = [
            ("user", "first", "text"),
            ("assistant", "second", "text"),
            ("user", "/uploads/1-cat.png", "image"),
            ("assistant", "  spaced  \n", "text"),
            ("user", "", "text"),
        ]
        for role, content, content_type in sent:
            await append_message(db_session, chat.id, owner.id, role, content, content_type)
        await db_session.commit()

        loaded = await get_chat(db_session, chat.id, owner.id)
        assert [(m.role, m.content, m.content_type) for m in loaded.messages] == sent
        assert [m.position for m in loaded.messages] == list(range(len(sent)))

    @pytest.mark.asyncio
    async def test_new_chat_is_empty(self, db_session):
        owner = await _user(db_session, "a")
        chat = await create_chat(db_session, owner.id, None)
        assert chat.title == DEFAULT_TITLE
        assert chat.messages == []

    @pytest.mark.asyncio
    async def test_rejects_unknown_role(self, db_session):
        owner = await _user(db_session, "a")
        chat = await create_chat(db_session, owner.id, "T")
        with pytest.raises(InvalidRequest):
            await append_message(db_session, chat.id, owner.id, "system", "hi")


class TestOwnership:
    @pytest.mark.asyncio
    async def test_other_user_cannot_read(self, db_session):
        owner = await _user(db_session, "a")
        intruder = await _user(db_session, "b")
        chat = await create_chat(db_session, owner.id, "T")
        with pytest.raises(ChatNotFound):
            await get_chat(db_session, chat.id, intruder.id)

    @pytest.mark.asyncio
    async def test_other_user_cannot_append(self, db_session):
        owner = await _user(db_session, "a")
        intruder = await _user(db_session, "b")
        chat = await create_chat(db_session, owner.id, "T")
        with pytest.raises(ChatNotFound):
            await append_message(db_session, chat.id, intruder.id, "user", "hi")
        assert (await get_chat(db_session, chat.id, owner.id)).messages == []

    @pytest.mark.asyncio
    async def test_missing_and_foreign_look_the_same(self, db_session):
        from uuid import uuid4

        owner = await _user(db_session, "a")
        intruder = await _user(db_session, "b")
        chat = await create_chat(db_session, owner.id, "T")

        with pytest.raises(ChatNotFound) as foreign:
            await get_chat(db_session, chat.id, intruder.id)
        with pytest.raises(ChatNotFound) as missing:
            await get_chat(db_session, uuid4(), owner.id)
        assert str(foreign.value) == str(missing.value)


class TestListChats:
    @pytest.mark.asyncio
    async def test_newest_first_and_own_only(self, db_session):
        owner = await _user(db_session, "a")
        other = await _user(db_session, "b")
        first = await create_chat(db_session, owner.id, "first")
        await create_chat(db_session, other.id, "not mine")
        second = await create_chat(db_session, owner.id, "second")
        await append_message(db_session, first.id, owner.id, "user", "hi")
        await db_session.commit()

        chats = await list_chats(db_session, owner.id)
        assert [c.id for c in chats] == [second.id, first.id]
        assert [m.content for m in chats[1].messages] == ["hi"]
