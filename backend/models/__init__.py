from .chat import Chat, chat_participants
from .chat_import import ChatImport
from .message import Message
from .user import User

__all__ = [
    "Chat",
    "ChatImport",
    "Message",
    "User",
    "chat_participants",
]
