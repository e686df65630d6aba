"""Backing stores for the client conversation state.

`RemoteChatStore` talks to the FreeSeek HTTP API; `LocalChatStore` keeps
chats in a JSON file and calls the completion gateway itself. Both stream
a turn as `StreamFrame`s and raise `ChatClientError` when the turn fails,
including when a stream ends without its closing ``done`` event.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import httpx

from client.config import ClientSettings
from client.errors import AuthenticationError, ChatClientError
from client.state import DEFAULT_TITLE, Chat, Message
from controllers.completion import AgentCompletionGateway, CompletionGateway, Turn
from controllers.errors import FreeSeekError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes
    media_type: str = "image/png"

    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


@dataclass(frozen=True)
class StreamFrame:
    content: str
    chat_id: str | None = None


class ChatStore(Protocol):
    async def list_chats(self) -> list[Chat]: ...

    def stream_turn(
        self, chat_id: str | None, content: str, image: ImageUpload | None = None
    ) -> AsyncIterator[StreamFrame]: ...


# ---------------------------------------------------------------------------
# Server-sent events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SSEEvent:
    event: str
    data: str


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Group `event:`/`data:` lines into events, one per blank-line block."""
    event = "message"
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield SSEEvent(event, "\n".join(data))
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield SSEEvent(event, "\n".join(data))


def _load_payload(data: str) -> dict[str, Any]:
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise ChatClientError(f"Malformed stream frame: {data[:80]!r}") from exc
    return payload if isinstance(payload, dict) else {}


def _error_from(response: httpx.Response) -> ChatClientError:
    try:
        message = response.json().get("error") or response.reason_phrase
    except ValueError:
        message = response.text or response.reason_phrase
    if response.status_code == 401:
        return AuthenticationError(message, response.status_code)
    return ChatClientError(message, response.status_code)


# ---------------------------------------------------------------------------
# Remote store
# ---------------------------------------------------------------------------


class RemoteChatStore:
    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        *,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(30.0, read=None)
        )
        self.token = token

    async def __aenter__(self) -> RemoteChatStore:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise ChatClientError(f"Request to {url} failed: {exc}") from exc
        if response.is_error:
            raise _error_from(response)
        return response.json()

    async def signup(self, username: str, email: str, password: str) -> str:
        body = await self._request(
            "POST", "/signup", json={"username": username, "email": email, "password": password}
        )
        return body["message"]

    async def login(self, username: str, password: str) -> str:
        body = await self._request(
            "POST", "/login", json={"username": username, "password": password}
        )
        self.token = body["token"]
        return self.token

    async def create_chat(self, title: str = DEFAULT_TITLE) -> Chat:
        return Chat.from_json(await self._request("POST", "/chats", json={"title": title}))

    async def list_chats(self) -> list[Chat]:
        return [Chat.from_json(item) for item in await self._request("GET", "/chats")]

    async def get_chat(self, chat_id: str) -> Chat:
        return Chat.from_json(await self._request("GET", f"/chats/{chat_id}"))

    async def stream_turn(
        self, chat_id: str | None, content: str, image: ImageUpload | None = None
    ) -> AsyncIterator[StreamFrame]:
        url = "/chats/stream" if chat_id is None else f"/chats/{chat_id}/messages"
        if image is not None:
            kwargs: dict[str, Any] = {
                "files": {"image": (image.filename, image.data, image.media_type)}
            }
            if content:
                kwargs["data"] = {"content": content}
        else:
            kwargs = {"json": {"content": content}}

        completed = False
        try:
            async with self._client.stream(
                "POST", url, headers=self._headers(), **kwargs
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise _error_from(response)
                async for event in iter_sse_events(response.aiter_lines()):
                    payload = _load_payload(event.data)
                    if event.event == "error":
                        raise ChatClientError(payload.get("error") or "Stream failed")
                    if event.event == "done":
                        completed = True
                        if payload.get("chatId"):
                            # a reply with no text still creates the chat
                            yield StreamFrame("", payload["chatId"])
                        break
                    yield StreamFrame(payload.get("content", ""), payload.get("chatId"))
        except httpx.HTTPError as exc:
            raise ChatClientError(f"Stream interrupted: {exc}") from exc

        if not completed:
            raise ChatClientError("Stream closed before the reply completed")


# ---------------------------------------------------------------------------
# Local store
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _turn(message: Message) -> Turn:
    content = message.content if message.content_type == "text" else "image"
    return Turn(role=message.role, content=content, content_type=message.content_type)


class LocalChatStore:
    """Chats in a JSON file on disk, completions straight from the gateway."""

    def __init__(self, path: Path, gateway: CompletionGateway) -> None:
        self.path = Path(path)
        self.gateway = gateway

    def _load(self) -> list[Chat]:
        if not self.path.exists():
            return []
        raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        return [Chat.from_json(item) for item in raw]

    def _save(self, chats: list[Chat]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps([chat.to_json() for chat in chats], indent=2), encoding="utf-8"
        )

    def _put(self, chat: Chat) -> None:
        chats = self._load()
        for index, existing in enumerate(chats):
            if existing.id == chat.id:
                chats[index] = chat
                break
        else:
            chats.insert(0, chat)
        self._save(chats)

    async def list_chats(self) -> list[Chat]:
        return self._load()

    async def stream_turn(
        self, chat_id: str | None, content: str, image: ImageUpload | None = None
    ) -> AsyncIterator[StreamFrame]:
        content_type = "text"
        if image is not None:
            content, content_type = image.data_uri(), "image"

        if chat_id is None:
            title = content.strip()[:50] if content_type == "text" else ""
            chat = Chat(id=str(uuid4()), title=title or DEFAULT_TITLE, created_at=_now())
        else:
            chat = next((c for c in self._load() if c.id == chat_id), None)
            if chat is None:
                raise ChatClientError("Chat not found", 404)

        user_message = Message(
            id=str(uuid4()),
            role="user",
            content=content,
            content_type=content_type,
            created_at=_now(),
        )
        chat = replace(chat, messages=(*chat.messages, user_message))
        self._put(chat)

        announce = chat.id if chat_id is None else None
        deltas: list[str] = []
        try:
            async for delta in self.gateway.stream([_turn(m) for m in chat.messages]):
                deltas.append(delta)
                yield StreamFrame(delta, announce)
        except FreeSeekError as exc:
            logger.warning("Local turn for chat %s failed: %s", chat.id, exc)
            raise ChatClientError(str(exc), exc.status_code) from exc

        reply = Message(
            id=str(uuid4()), role="assistant", content="".join(deltas), created_at=_now()
        )
        self._put(replace(chat, messages=(*chat.messages, reply)))
        if announce is not None:
            yield StreamFrame("", announce)


def open_store(settings: ClientSettings, gateway: CompletionGateway | None = None) -> ChatStore:
    """Pick the backing store named by the settings."""
    if settings.backend == "local":
        return LocalChatStore(
            settings.local_path,
            gateway or AgentCompletionGateway(settings=settings.completion),
        )
    return RemoteChatStore(settings.api_url, token=settings.token)
