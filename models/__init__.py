from models.chat import Chat, Message
from models.user import User

__all__ = ["Chat", "Message", "User"]
