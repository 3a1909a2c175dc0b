from typing import Protocol, runtime_checkable

from agentstream.protocol.events import ApprovalRequest


@runtime_checkable
class StreamSink(Protocol):
    """Downstream consumer of released text (the conversation/UI store).

    Every ``append_*`` call carries a contiguous slice of one channel; slices
    arrive in order and are never repeated. ``streaming=False`` marks the
    final slice of that channel for the current message and may be empty.
    """

    def ensure_conversation(self, session_id: str) -> None: ...

    def append_answer(self, session_id: str, text: str, streaming: bool) -> None: ...

    def append_reasoning(self, session_id: str, text: str, streaming: bool) -> None: ...

    def append_tool_output(self, session_id: str, text: str, streaming: bool) -> None: ...

    def replace_answer(self, session_id: str, text: str, streaming: bool) -> None: ...

    def replace_reasoning(self, session_id: str, text: str, streaming: bool) -> None: ...

    def add_system_message(self, session_id: str, text: str) -> None: ...

    def set_loading(self, session_id: str, loading: bool) -> None: ...

    def snapshot(self, session_id: str) -> None: ...

    def request_approval(self, session_id: str, request: ApprovalRequest) -> None: ...
