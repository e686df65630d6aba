import json
import re
import time
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any
from uuid import UUID

import anyio
from litestar import Controller, Request, get, post
from litestar.background_tasks import BackgroundTask
from litestar.datastructures import State, UploadFile
from litestar.di import Provide
from litestar.response.sse import ServerSentEvent, ServerSentEventMessage
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import UploadSettings
from controllers.auth import provide_current_user
from controllers.completion import Turn
from controllers.conversations import (
    append_message,
    create_chat,
    get_chat,
    list_chats,
    title_from_content,
)
from controllers.errors import ChatNotFound, InvalidRequest
from controllers.relay import ChatTurn, DeltaEvent, DoneEvent, ErrorEvent
from models.chat import Chat, Message
from models.user import User

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class Submission:
    content: str
    content_type: str
    stored_file: anyio.Path | None = None

    async def discard(self) -> None:
        """Remove an uploaded file whose message was never saved."""
        if self.stored_file is not None:
            await self.stored_file.unlink(missing_ok=True)


def serialize_message(message: Message) -> dict[str, Any]:
    return {
        "id": str(message.id),
        "chatId": str(message.chat_id),
        "role": message.role,
        "content": message.content,
        "type": message.content_type,
        "createdAt": message.created_at.isoformat(),
    }


def serialize_chat(chat: Chat) -> dict[str, Any]:
    return {
        "id": str(chat.id),
        "title": chat.title,
        "userId": str(chat.user_id),
        "createdAt": chat.created_at.isoformat(),
        "updatedAt": chat.updated_at.isoformat(),
        "messages": [serialize_message(m) for m in chat.messages],
    }


def _parse_chat_id(chat_id: str) -> UUID:
    try:
        return UUID(chat_id)
    except ValueError as exc:
        raise ChatNotFound() from exc


async def _read_json(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidRequest("Request body must be JSON") from exc
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object")
    return data


async def _store_image(image: UploadFile, uploads: UploadSettings) -> Submission:
    """Write an uploaded image to the upload directory."""
    if not (image.content_type or "").startswith("image/"):
        raise InvalidRequest("Only image uploads are supported")

    name = _UNSAFE_FILENAME_CHARS.sub("_", PurePath(image.filename or "").name) or "image"
    filename = f"{int(time.time() * 1000)}-{name}"
    directory = anyio.Path(uploads.directory)
    await directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    await path.write_bytes(await image.read())
    return Submission(f"{uploads.url_prefix.rstrip('/')}/{filename}", "image", path)


async def _read_submission(request: Request, uploads: UploadSettings) -> Submission:
    """Parse a JSON `{content}` body or a multipart form with `content`/`image`."""
    media_type, _ = request.content_type
    if media_type == "multipart/form-data":
        form = await request.form()
        image = form.get("image")
        if isinstance(image, UploadFile):
            return await _store_image(image, uploads)
        content = form.get("content")
    else:
        content = (await _read_json(request)).get("content")

    if not isinstance(content, str) or not content.strip():
        raise InvalidRequest("Message content is required")
    return Submission(content, "text")


def _turn(message: Message) -> Turn:
    return Turn(role=message.role, content=message.content, content_type=message.content_type)


async def _sse_frames(
    turn: ChatTurn, chat_id: str | None = None
) -> AsyncGenerator[ServerSentEventMessage, None]:
    async with aclosing(turn.events()) as events:
        async for event in events:
            if isinstance(event, DeltaEvent):
                payload = {"content": event.text}
                if chat_id is not None:
                    payload["chatId"] = chat_id
                yield ServerSentEventMessage(data=json.dumps(payload))
            elif isinstance(event, DoneEvent):
                payload = {"messageId": str(event.message_id)}
                if chat_id is not None:
                    payload["chatId"] = chat_id
                yield ServerSentEventMessage(data=json.dumps(payload), event="done")
            elif isinstance(event, ErrorEvent):
                yield ServerSentEventMessage(
                    data=json.dumps({"error": event.error}),
                    event="error",
                )


async def _relay(
    state: State,
    chat_id: UUID,
    user_id: UUID,
    turns: list[Turn],
    include_chat_id: bool = False,
) -> ServerSentEvent:
    turn = ChatTurn(
        chat_id=chat_id,
        user_id=user_id,
        turns=turns,
        gateway=state.gateway,
        session_factory=state.session_factory,
    )
    await turn.open()
    # the body may never be iterated if the client leaves first; the
    # background task still stops the gateway once the response is over
    return ServerSentEvent(
        _sse_frames(turn, str(chat_id) if include_chat_id else None),
        background=BackgroundTask(turn.aclose),
    )


class ChatController(Controller):
    path = "/chats"
    dependencies = {"current_user": Provide(provide_current_user)}

    @post("/", status_code=200)
    async def create(
        self, request: Request, db_session: AsyncSession, current_user: User
    ) -> dict[str, Any]:
        body = await _read_json(request)
        title = body.get("title")
        chat = await create_chat(
            db_session, current_user.id, title if isinstance(title, str) else None
        )
        await db_session.commit()
        return serialize_chat(chat)

    @get("/")
    async def index(
        self, db_session: AsyncSession, current_user: User
    ) -> list[dict[str, Any]]:
        chats = await list_chats(db_session, current_user.id)
        return [serialize_chat(chat) for chat in chats]

    @get("/{chat_id:str}")
    async def detail(
        self, db_session: AsyncSession, current_user: User, chat_id: str
    ) -> dict[str, Any]:
        chat = await get_chat(db_session, _parse_chat_id(chat_id), current_user.id)
        return serialize_chat(chat)

    @post("/stream", status_code=200)
    async def stream_new_chat(
        self,
        request: Request,
        db_session: AsyncSession,
        state: State,
        current_user: User,
    ) -> ServerSentEvent:
        submission = await _read_submission(request, state.settings.uploads)
        title = title_from_content(
            submission.content if submission.content_type == "text" else None
        )
        try:
            chat = await create_chat(db_session, current_user.id, title)
            message = await append_message(
                db_session,
                chat.id,
                current_user.id,
                "user",
                submission.content,
                submission.content_type,
            )
            await db_session.commit()
        except SQLAlchemyError:
            await submission.discard()
            raise

        return await _relay(
            state, chat.id, current_user.id, [_turn(message)], include_chat_id=True
        )

    @post("/{chat_id:str}/messages", status_code=200)
    async def add_message(
        self,
        request: Request,
        db_session: AsyncSession,
        state: State,
        current_user: User,
        chat_id: str,
    ) -> ServerSentEvent:
        chat = await get_chat(db_session, _parse_chat_id(chat_id), current_user.id)
        submission = await _read_submission(request, state.settings.uploads)

        history = [_turn(m) for m in chat.messages]
        try:
            message = await append_message(
                db_session,
                chat.id,
                current_user.id,
                "user",
                submission.content,
                submission.content_type,
            )
            await db_session.commit()
        except SQLAlchemyError:
            await submission.discard()
            raise

        return await _relay(state, chat.id, current_user.id, [*history, _turn(message)])
