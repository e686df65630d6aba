"""Drive the conversation reducer from a backing store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from uuid import uuid4

from client.state import (
    ChatAssigned,
    ChatSelected,
    ChatsLoaded,
    ConversationState,
    DeltaReceived,
    Event,
    OptimisticSend,
    TurnCompleted,
    TurnFailed,
    reduce,
)
from client.stores import ChatStore, ImageUpload

logger = logging.getLogger(__name__)

Listener = Callable[[ConversationState], None]


def _temp_id() -> str:
    return f"local-{uuid4().hex}"


class ConversationSession:
    """Single-flight sends with optimistic updates and rollback.

    Listeners are called with the new state after every applied event, so
    a UI redraws once per received delta.
    """

    def __init__(self, store: ChatStore, state: ConversationState | None = None) -> None:
        self.store = store
        self.state = state or ConversationState()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def dispatch(self, event: Event) -> ConversationState:
        new_state = reduce(self.state, event)
        if new_state is not self.state:
            self.state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self.state

    async def refresh(self, active_chat_id: str | None = None) -> ConversationState:
        chats = await self.store.list_chats()
        return self.dispatch(ChatsLoaded(tuple(chats), active_chat_id=active_chat_id))

    def select_chat(self, chat_id: str | None) -> ConversationState:
        """Pass None to start a new chat with the next send."""
        return self.dispatch(ChatSelected(chat_id))

    async def send(self, content: str, image: ImageUpload | None = None) -> bool:
        """Send one message and stream the reply into the state.

        Returns False without doing anything when the input is empty or a
        turn is already in flight, and False after rolling back a failed
        turn. The failure message is left in `state.error`.
        """
        if self.state.in_flight:
            return False
        if image is None and not content.strip():
            return False

        before = self.state
        self.dispatch(
            OptimisticSend(
                content=image.data_uri() if image is not None else content,
                content_type="image" if image is not None else "text",
                user_message_id=_temp_id(),
                assistant_message_id=_temp_id(),
                new_chat_id=_temp_id(),
                created_at=datetime.now(timezone.utc).isoformat(),
            )
        )
        pending = self.state.pending
        if pending is None or self.state is before:
            return False

        target = None if pending.new_chat else pending.chat_id
        try:
            async for frame in self.store.stream_turn(target, content, image):
                if (
                    pending.new_chat
                    and frame.chat_id
                    and frame.chat_id != self.state.pending.server_chat_id
                ):
                    self.dispatch(ChatAssigned(frame.chat_id))
                if frame.content:
                    self.dispatch(DeltaReceived(frame.content))
        except asyncio.CancelledError:
            self.dispatch(TurnFailed("Request cancelled"))
            raise
        except Exception as exc:
            logger.warning("Turn failed: %s", exc)
            self.dispatch(TurnFailed(str(exc) or exc.__class__.__name__))
            return False

        server_chat_id = self.state.pending.server_chat_id
        self.dispatch(TurnCompleted())
        if pending.new_chat:
            if server_chat_id is None:
                logger.warning("Server did not report the id of the new chat")
            try:
                await self.refresh(active_chat_id=server_chat_id)
            except Exception:
                logger.warning("Could not refresh chats after creating %s", server_chat_id, exc_info=True)
        return True
