"""Client-side conversation state, rendering and backing stores."""

from client.errors import AuthenticationError, ChatClientError
from client.session import ConversationSession
from client.state import Chat, ConversationState, Message, reduce
from client.stores import (
    ImageUpload,
    LocalChatStore,
    RemoteChatStore,
    StreamFrame,
    open_store,
)

__all__ = [
    "AuthenticationError",
    "Chat",
    "ChatClientError",
    "ConversationSession",
    "ConversationState",
    "ImageUpload",
    "LocalChatStore",
    "Message",
    "RemoteChatStore",
    "StreamFrame",
    "open_store",
    "reduce",
]
