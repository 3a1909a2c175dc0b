"""
Event system for agentstream.

Provides a small event bus used by sinks to fan out store mutations to
renderers and other observers. Publishing is available both as a coroutine
and synchronously, because reveal callbacks run as plain loop callbacks.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar, Union
from collections import defaultdict
from enum import Enum, auto
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

# Type for event data - could be any type
T = TypeVar('T')
# Type for event handlers - could be synchronous or asynchronous
EventHandler = Union[Callable[[T], None], Callable[[T], Awaitable[None]]]


class EventPriority(Enum):
    """Priority levels for event handling."""
    HIGH = auto()    # Handled first, e.g. persistence hooks
    NORMAL = auto()  # Standard events
    LOW = auto()     # Background/non-urgent events


class EventBus:
    """
    Event bus for conversation store notifications.

    Features:
    - Supports both sync and async subscribers
    - Prioritized event handling
    - Handler failures are logged and never reach the publisher
    """

    _instance = None

    @classmethod
    def get_instance(cls):
        """Get or create the shared instance of EventBus."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def __init__(self):
        # Event handlers grouped by event type and priority
        self._handlers: Dict[str, Dict[EventPriority, List[EventHandler]]] = defaultdict(
            lambda: {
                EventPriority.HIGH: [],
                EventPriority.NORMAL: [],
                EventPriority.LOW: []
            }
        )
        # Async handlers scheduled from sync code, kept until they finish
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: str,
        handler: EventHandler[T],
        priority: EventPriority = EventPriority.NORMAL
    ) -> None:
        """
        Subscribe to an event with a handler function.

        Args:
            event_type: The name/type of the event
            handler: The function to call when event occurs (sync or async)
            priority: Execution priority for this handler
        """
        handlers = self._handlers[event_type][priority]
        if handler not in handlers:
            handlers.append(handler)
        logger.debug(f"Subscribed to {event_type} with {priority.name} priority")

    def unsubscribe(self, event_type: str, handler: EventHandler[T]) -> None:
        """
        Unsubscribe a handler from an event.

        Args:
            event_type: The name/type of the event
            handler: The handler to remove
        """
        if event_type not in self._handlers:
            return

        for priority in EventPriority:
            self._handlers[event_type][priority] = [
                h for h in self._handlers[event_type][priority] if h is not handler
            ]

        logger.debug(f"Unsubscribed from {event_type}")

    def _ordered_handlers(self, event_type: str) -> List[EventHandler]:
        if event_type not in self._handlers:
            return []
        ordered: List[EventHandler] = []
        for priority in [EventPriority.HIGH, EventPriority.NORMAL, EventPriority.LOW]:
            ordered.extend(self._handlers[event_type][priority])
        return ordered

    async def publish(self, event_type: str, data: Optional[T] = None) -> None:
        """
        Publish an event to all subscribers, awaiting async handlers.

        Args:
            event_type: The name/type of the event
            data: Optional data to pass to handlers
        """
        for handler in self._ordered_handlers(event_type):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(data)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {e}")

    def publish_nowait(self, event_type: str, data: Optional[T] = None) -> None:
        """
        Publish from synchronous code.

        Sync handlers run inline. Async handlers are scheduled on the running
        loop; without one they are skipped with a debug message.
        """
        for handler in self._ordered_handlers(event_type):
            try:
                if inspect.iscoroutinefunction(handler):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        logger.debug(f"No running loop; skipping async handler for {event_type}")
                        continue
                    self._track_task(loop.create_task(handler(data)), event_type)
                else:
                    handler(data)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {e}")

    def _track_task(self, task: "asyncio.Task", event_type: str) -> None:
        self._tasks.add(task)

        def _cleanup(t: "asyncio.Task") -> None:
            self._tasks.discard(t)
            try:
                exc = t.exception()
            except asyncio.CancelledError:
                return
            if exc is not None:
                logger.error(f"Error in event handler for {event_type}: {exc}")

        task.add_done_callback(_cleanup)

    @property
    def pending_tasks(self) -> int:
        """Number of async handlers scheduled by publish_nowait that are still running."""
        return len(self._tasks)

    def clear_all_handlers(self) -> None:
        """Clear all event handlers - useful for testing."""
        self._handlers.clear()

    def get_subscriber_count(self, event_type: str) -> int:
        """Get the number of subscribers for an event type."""
        return len(self._ordered_handlers(event_type))


class StoreEvent(Enum):
    """Notifications published by the conversation store."""
    CONVERSATION_CREATED = "conversation.created"
    MESSAGE_ADDED = "message.added"
    MESSAGE_UPDATED = "message.updated"
    LOADING_CHANGED = "session.loading"
    SNAPSHOT_REQUESTED = "message.snapshot"
    APPROVAL_REQUESTED = "approval.requested"
