from .base import StreamSink
from .store import Conversation, Message, MessageStore

__all__ = ["StreamSink", "Conversation", "Message", "MessageStore"]
