"""Client-held conversation state as a pure reducer.

`reduce(state, event)` returns the next state. An optimistic send adds a
user message and a streaming assistant placeholder (creating a local chat
first when none is active); deltas grow the placeholder; completion clears
the streaming flag and gives a local chat the id the server assigned;
failure removes every optimistic entry so the state matches what it was
before the send.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

DEFAULT_TITLE = "New Chat"
_TITLE_LENGTH = 50


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    content_type: str = "text"
    created_at: str | None = None
    is_streaming: bool = False

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=str(data["id"]),
            role=data["role"],
            content=data.get("content", ""),
            content_type=data.get("type", "text"),
            created_at=data.get("createdAt"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "type": self.content_type,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Chat:
    id: str
    title: str
    messages: tuple[Message, ...] = ()
    created_at: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Chat:
        return cls(
            id=str(data["id"]),
            title=data.get("title") or DEFAULT_TITLE,
            messages=tuple(Message.from_json(m) for m in data.get("messages", [])),
            created_at=data.get("createdAt"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "messages": [m.to_json() for m in self.messages],
        }


@dataclass(frozen=True)
class PendingTurn:
    """Bookkeeping for the one turn in flight."""

    chat_id: str
    user_message_id: str
    assistant_message_id: str
    new_chat: bool
    previous_active_chat_id: str | None
    text: str = ""
    server_chat_id: str | None = None


@dataclass(frozen=True)
class ConversationState:
    chats: tuple[Chat, ...] = ()
    active_chat_id: str | None = None
    pending: PendingTurn | None = None
    error: str | None = None

    @property
    def in_flight(self) -> bool:
        return self.pending is not None

    @property
    def active_chat(self) -> Chat | None:
        return next((c for c in self.chats if c.id == self.active_chat_id), None)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatsLoaded:
    chats: tuple[Chat, ...]
    active_chat_id: str | None = None


@dataclass(frozen=True)
class ChatSelected:
    chat_id: str | None


@dataclass(frozen=True)
class OptimisticSend:
    content: str
    user_message_id: str
    assistant_message_id: str
    new_chat_id: str
    content_type: str = "text"
    created_at: str | None = None


@dataclass(frozen=True)
class ChatAssigned:
    """The server reported the durable id of a chat created by this turn."""

    chat_id: str


@dataclass(frozen=True)
class DeltaReceived:
    text: str


@dataclass(frozen=True)
class TurnCompleted:
    pass


@dataclass(frozen=True)
class TurnFailed:
    error: str


Event = (
    ChatsLoaded
    | ChatSelected
    | OptimisticSend
    | ChatAssigned
    | DeltaReceived
    | TurnCompleted
    | TurnFailed
)


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def _title_for(event: OptimisticSend) -> str:
    text = event.content.strip() if event.content_type == "text" else ""
    return text[:_TITLE_LENGTH] or DEFAULT_TITLE


def _map_chat(state: ConversationState, chat_id: str, update) -> tuple[Chat, ...]:
    return tuple(update(chat) if chat.id == chat_id else chat for chat in state.chats)


def _update_message(chat: Chat, message_id: str, **changes: Any) -> Chat:
    return replace(
        chat,
        messages=tuple(
            replace(m, **changes) if m.id == message_id else m for m in chat.messages
        ),
    )


def _send(state: ConversationState, event: OptimisticSend) -> ConversationState:
    if state.pending is not None:
        return state
    if event.content_type == "text" and not event.content.strip():
        return state

    chats = state.chats
    chat_id = state.active_chat_id if state.active_chat is not None else None
    new_chat = chat_id is None
    if new_chat:
        chat_id = event.new_chat_id
        chats = (
            Chat(id=chat_id, title=_title_for(event), created_at=event.created_at),
            *chats,
        )

    user_message = Message(
        id=event.user_message_id,
        role="user",
        content=event.content,
        content_type=event.content_type,
        created_at=event.created_at,
    )
    placeholder = Message(
        id=event.assistant_message_id,
        role="assistant",
        content="",
        created_at=event.created_at,
        is_streaming=True,
    )
    chats = tuple(
        replace(c, messages=(*c.messages, user_message, placeholder)) if c.id == chat_id else c
        for c in chats
    )
    return replace(
        state,
        chats=chats,
        active_chat_id=chat_id,
        error=None,
        pending=PendingTurn(
            chat_id=chat_id,
            user_message_id=event.user_message_id,
            assistant_message_id=event.assistant_message_id,
            new_chat=new_chat,
            previous_active_chat_id=state.active_chat_id,
        ),
    )


def _delta(state: ConversationState, event: DeltaReceived) -> ConversationState:
    pending = state.pending
    if pending is None:
        return state
    text = pending.text + event.text
    chats = _map_chat(
        state,
        pending.chat_id,
        lambda c: _update_message(c, pending.assistant_message_id, content=text),
    )
    return replace(state, chats=chats, pending=replace(pending, text=text))


def _complete(state: ConversationState) -> ConversationState:
    pending = state.pending
    if pending is None:
        return state
    chat_id = pending.chat_id
    if pending.new_chat and pending.server_chat_id:
        chat_id = pending.server_chat_id

    def settle(chat: Chat) -> Chat:
        chat = _update_message(chat, pending.assistant_message_id, is_streaming=False)
        return replace(chat, id=chat_id)

    chats = _map_chat(state, pending.chat_id, settle)
    active = chat_id if state.active_chat_id == pending.chat_id else state.active_chat_id
    return replace(state, chats=chats, active_chat_id=active, pending=None)


def _fail(state: ConversationState, event: TurnFailed) -> ConversationState:
    pending = state.pending
    if pending is None:
        return replace(state, error=event.error)

    if pending.new_chat:
        chats = tuple(c for c in state.chats if c.id != pending.chat_id)
    else:
        optimistic = {pending.user_message_id, pending.assistant_message_id}
        chats = _map_chat(
            state,
            pending.chat_id,
            lambda c: replace(
                c, messages=tuple(m for m in c.messages if m.id not in optimistic)
            ),
        )
    return replace(
        state,
        chats=chats,
        active_chat_id=pending.previous_active_chat_id,
        pending=None,
        error=event.error,
    )


def reduce(state: ConversationState, event: Event) -> ConversationState:
    if isinstance(event, OptimisticSend):
        return _send(state, event)
    if isinstance(event, DeltaReceived):
        return _delta(state, event)
    if isinstance(event, TurnCompleted):
        return _complete(state)
    if isinstance(event, TurnFailed):
        return _fail(state, event)
    if isinstance(event, ChatAssigned):
        if state.pending is None:
            return state
        return replace(state, pending=replace(state.pending, server_chat_id=event.chat_id))
    if isinstance(event, ChatSelected):
        if state.pending is not None:
            return state
        return replace(state, active_chat_id=event.chat_id, error=None)
    if isinstance(event, ChatsLoaded):
        # a refresh would drop optimistic entries; wait for the turn to settle
        if state.pending is not None:
            return state
        ids = {c.id for c in event.chats}
        active = event.active_chat_id or state.active_chat_id
        return replace(
            state,
            chats=tuple(event.chats),
            active_chat_id=active if active in ids else None,
        )
    raise TypeError(f"unknown event {event!r}")
