"""agentstream - paced, coalesced reveal of streamed agent output.

Takes the bursty delta stream of a long-running agent process (answer text,
reasoning text, command output) and releases it to a conversation store as a
smooth, in-order reveal:

- Rate-adaptive pacing with an immediate "boost" window at turn start
- Backlog catch-up so bursts never fall behind
- Forced drain on turn completion, error and abort

Example Usage:
    ```python
    from agentstream import MessageStore, SessionStreamCoordinator

    store = MessageStore()
    coordinator = SessionStreamCoordinator(store)

    # inside the running asyncio loop
    coordinator.on_event("session-1", {"type": "turn_started"})
    coordinator.on_event("session-1", {"type": "answer_delta", "text": "Hello"})
    coordinator.on_event("session-1", {"type": "turn_complete"})

    print(store.get("session-1").last_message.content)
    ```
"""

from ._version import __version__
from .config import PacingConfig, load_config
from .protocol import ApprovalRequest, parse_event
from .sinks import MessageStore, StreamSink
from .streaming import Channel, LoopClock, ManualClock, SessionStreamCoordinator

__all__ = [
    "__version__",
    "PacingConfig",
    "load_config",
    "ApprovalRequest",
    "parse_event",
    "MessageStore",
    "StreamSink",
    "Channel",
    "LoopClock",
    "ManualClock",
    "SessionStreamCoordinator",
]
