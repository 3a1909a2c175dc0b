from .events import (
    AgentEvent,
    ApprovalRequest,
    EVENT_TYPES,
    IGNORED_EVENT_TYPES,
    normalize_event,
    parse_event,
)
from .stderr import clean_stderr_line

__all__ = [
    "AgentEvent",
    "ApprovalRequest",
    "EVENT_TYPES",
    "IGNORED_EVENT_TYPES",
    "normalize_event",
    "parse_event",
    "clean_stderr_line",
]
