from .errors import (
    AgentStreamError,
    ConfigError,
    MalformedEventError,
    SessionNotFoundError,
    UnknownEventError,
    error_handler,
)
from .events import EventBus, EventPriority, StoreEvent
from .logs import setup_logger

__all__ = [
    "AgentStreamError",
    "ConfigError",
    "MalformedEventError",
    "SessionNotFoundError",
    "UnknownEventError",
    "error_handler",
    "EventBus",
    "EventPriority",
    "StoreEvent",
    "setup_logger",
]
