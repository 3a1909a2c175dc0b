"""Replay of recorded agent event logs through the reveal engine."""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from agentstream.sinks.store import Conversation, Message
from agentstream.streaming.clock import ManualClock
from agentstream.streaming.coordinator import SessionStreamCoordinator
from agentstream.utils.errors import MalformedEventError

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "replay"

ROLE_STYLES = {
    "user": "blue",
    "assistant": "green",
    "system": "red",
}


@dataclass
class ReplayRecord:
    """One line of an event log.

    Lines are JSON objects of the form
    ``{"delay_ms": 40, "session_id": "s1", "event": {...}}`` or
    ``{"delay_ms": 0, "stderr": "..."}``. A bare event object (with an optional
    ``delay_ms``) is accepted too.
    """

    delay_ms: float
    session_id: str
    event: Optional[Dict[str, Any]] = None
    stderr: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_session: str = DEFAULT_SESSION) -> "ReplayRecord":
        data = dict(data)
        delay = float(data.pop("delay_ms", 0) or 0)
        session_id = str(data.pop("session_id", None) or default_session)
        if "stderr" in data:
            return cls(delay_ms=delay, session_id=session_id, stderr=str(data["stderr"]))
        event = data.get("event", data)
        if not isinstance(event, dict):
            raise MalformedEventError("Replay record has no event object", details={"record": data})
        return cls(delay_ms=delay, session_id=session_id, event=event)


def load_records(path: Union[str, Path], default_session: str = DEFAULT_SESSION) -> List[ReplayRecord]:
    """Read a JSONL event log, skipping blank lines and ``#`` comments."""
    records: List[ReplayRecord] = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                records.append(ReplayRecord.from_dict(json.loads(line), default_session))
            except (json.JSONDecodeError, MalformedEventError) as e:
                logger.warning(f"Skipping line {line_no} of {path}: {e}")
    return records


def dispatch(coordinator: SessionStreamCoordinator, record: ReplayRecord) -> bool:
    if record.stderr is not None:
        return coordinator.on_stderr(record.session_id, record.stderr)
    return coordinator.on_event(record.session_id, record.event)


def replay_instant(
    coordinator: SessionStreamCoordinator,
    clock: ManualClock,
    records: Iterable[ReplayRecord],
    settle_ms: float = 1000.0,
) -> int:
    """Replay under virtual time. Returns the number of handled records."""
    handled = 0
    for record in records:
        clock.advance(record.delay_ms)
        handled += dispatch(coordinator, record)
    clock.advance(settle_ms)
    return handled


async def replay_realtime(
    coordinator: SessionStreamCoordinator,
    records: Iterable[ReplayRecord],
    settle_ms: float = 1000.0,
    speed: float = 1.0,
) -> int:
    """Replay on the running loop, sleeping ``delay_ms / speed`` between records."""
    handled = 0
    for record in records:
        if record.delay_ms > 0:
            await asyncio.sleep(record.delay_ms / 1000.0 / speed)
        handled += dispatch(coordinator, record)
    await asyncio.sleep(settle_ms / 1000.0)
    return handled


def render_message(message: Message) -> Panel:
    parts = []
    if message.reasoning:
        parts.append(Text(message.reasoning, style="dim italic"))
    if message.tool_output:
        parts.append(Text(message.tool_output, style="yellow"))
    if message.content:
        parts.append(Text(message.content))
    streaming = message.is_streaming or message.is_reasoning_streaming or message.is_tool_streaming
    title = f"{message.role}{' …' if streaming else ''}"
    return Panel(Group(*parts), title=title, border_style=ROLE_STYLES.get(message.role, "white"))


def render_conversation(conversation: Optional[Conversation]) -> Group:
    if conversation is None:
        return Group(Text("(no conversation yet)", style="dim"))
    panels = [render_message(message) for message in conversation.messages]
    if conversation.loading:
        panels.append(Text("working…", style="dim"))
    return Group(*panels)
