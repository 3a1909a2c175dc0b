"""In-memory conversation store.

Reference implementation of ``StreamSink``. It keeps conversations as lists of
messages, applies released slices to the last assistant message and notifies
observers (renderers, persistence hooks) through an ``EventBus``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional
import logging
import time
import uuid

from agentstream.protocol.events import ApprovalRequest
from agentstream.utils.errors import SessionNotFoundError
from agentstream.utils.events import EventBus, StoreEvent

logger = logging.getLogger(__name__)


def _message_id(session_id: str) -> str:
    return f"{session_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


@dataclass
class Message:
    """A conversation message with its three streamed channels."""

    id: str
    role: Literal["user", "assistant", "system"]
    content: str = ""
    reasoning: str = ""
    tool_output: str = ""
    timestamp: float = field(default_factory=time.time)
    is_streaming: bool = False
    is_reasoning_streaming: bool = False
    is_tool_streaming: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Conversation:
    id: str
    title: str = "New Chat"
    mode: str = "agent"
    messages: List[Message] = field(default_factory=list)
    loading: bool = False
    snapshots: List[Dict[str, Any]] = field(default_factory=list)
    approvals: List[ApprovalRequest] = field(default_factory=list)

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


_CHANNEL_FIELDS = {
    "answer": ("content", "is_streaming"),
    "reasoning": ("reasoning", "is_reasoning_streaming"),
    "tool_output": ("tool_output", "is_tool_streaming"),
}


class MessageStore:
    """Conversation store fed by the stream coordinator."""

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus or EventBus()
        self.conversations: Dict[str, Conversation] = {}

    # --- Queries ---

    def get(self, session_id: str) -> Optional[Conversation]:
        return self.conversations.get(session_id)

    def require(self, session_id: str) -> Conversation:
        conv = self.conversations.get(session_id)
        if conv is None:
            raise SessionNotFoundError(session_id)
        return conv

    def last_assistant(self, session_id: str) -> Optional[Message]:
        conv = self.conversations.get(session_id)
        last = conv.last_message if conv else None
        return last if last is not None and last.role == "assistant" else None

    # --- StreamSink ---

    def ensure_conversation(self, session_id: str, title: str = "New Chat") -> Conversation:
        conv = self.conversations.get(session_id)
        if conv is None:
            logger.info(f"Creating conversation for session {session_id}")
            conv = Conversation(id=session_id, title=title)
            self.conversations[session_id] = conv
            self.event_bus.publish_nowait(StoreEvent.CONVERSATION_CREATED.value, {"session_id": session_id})
        return conv

    def append_answer(self, session_id: str, text: str, streaming: bool) -> None:
        self._append(session_id, "answer", text, streaming)

    def append_reasoning(self, session_id: str, text: str, streaming: bool) -> None:
        self._append(session_id, "reasoning", text, streaming)

    def append_tool_output(self, session_id: str, text: str, streaming: bool) -> None:
        self._append(session_id, "tool_output", text, streaming)

    def replace_answer(self, session_id: str, text: str, streaming: bool) -> None:
        self._replace(session_id, "answer", text, streaming)

    def replace_reasoning(self, session_id: str, text: str, streaming: bool) -> None:
        self._replace(session_id, "reasoning", text, streaming)

    def add_system_message(self, session_id: str, text: str) -> None:
        self.add_message(session_id, "system", text)

    def set_loading(self, session_id: str, loading: bool) -> None:
        conv = self.ensure_conversation(session_id)
        if conv.loading == loading:
            return
        conv.loading = loading
        self.event_bus.publish_nowait(
            StoreEvent.LOADING_CHANGED.value, {"session_id": session_id, "loading": loading}
        )

    def snapshot(self, session_id: str) -> None:
        """Record the finalized assistant message for durable persistence downstream."""
        message = self.last_assistant(session_id)
        if message is None:
            logger.debug(f"Nothing to snapshot for session {session_id}")
            return
        record = message.to_dict()
        self.conversations[session_id].snapshots.append(record)
        self.event_bus.publish_nowait(
            StoreEvent.SNAPSHOT_REQUESTED.value, {"session_id": session_id, "message": record}
        )

    def request_approval(self, session_id: str, request: ApprovalRequest) -> None:
        conv = self.ensure_conversation(session_id)
        conv.approvals.append(request)
        self.event_bus.publish_nowait(
            StoreEvent.APPROVAL_REQUESTED.value,
            {"session_id": session_id, "request": request.model_dump()},
        )

    # --- Mutations ---

    def add_message(self, session_id: str, role: str, content: str = "", streaming: bool = False) -> Message:
        conv = self.ensure_conversation(session_id)
        message = Message(id=_message_id(session_id), role=role, content=content, is_streaming=streaming)
        conv.messages.append(message)
        logger.debug(f"Adding {role} message to session {session_id}: {content[:100]!r}")
        self.event_bus.publish_nowait(
            StoreEvent.MESSAGE_ADDED.value, {"session_id": session_id, "message": message}
        )
        return message

    def _assistant_for_write(self, session_id: str, create: bool) -> Optional[Message]:
        message = self.last_assistant(session_id)
        if message is None and create:
            message = self.add_message(session_id, "assistant", streaming=True)
        return message

    def _append(self, session_id: str, channel: str, text: str, streaming: bool) -> None:
        message = self._assistant_for_write(session_id, create=bool(text))
        if message is None:
            return
        text_field, flag_field = _CHANNEL_FIELDS[channel]
        setattr(message, text_field, getattr(message, text_field) + text)
        setattr(message, flag_field, streaming)
        self._updated(session_id, message, channel, text)

    def _replace(self, session_id: str, channel: str, text: str, streaming: bool) -> None:
        message = self._assistant_for_write(session_id, create=True)
        text_field, flag_field = _CHANNEL_FIELDS[channel]
        setattr(message, text_field, text)
        setattr(message, flag_field, streaming)
        self._updated(session_id, message, channel, None)

    def _updated(self, session_id: str, message: Message, channel: str, chunk: Optional[str]) -> None:
        self.event_bus.publish_nowait(
            StoreEvent.MESSAGE_UPDATED.value,
            {"session_id": session_id, "message": message, "channel": channel, "chunk": chunk},
        )
