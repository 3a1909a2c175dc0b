"""Session Stream Coordinator.

Routes agent events to per-session channel schedulers and converts lifecycle
events into drains and resets. All work runs on one event loop, so channel
state is mutated without locking. The coordinator never raises to its caller:
unknown events are logged and dropped, sink failures are recorded through the
error handler.

Usage:
    store = MessageStore()
    coordinator = SessionStreamCoordinator(store)

    # Inside the running loop, for every decoded transport event
    coordinator.on_event(session_id, {"type": "answer_delta", "text": "Hel"})
"""

import codecs
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from agentstream.config import PacingConfig
from agentstream.protocol import events as ev
from agentstream.protocol.stderr import clean_stderr_line
from agentstream.sinks.base import StreamSink
from agentstream.streaming.clock import Clock, LoopClock
from agentstream.streaming.schedulers import (
    AnswerScheduler,
    Channel,
    ChannelScheduler,
    ReasoningScheduler,
    ToolOutputScheduler,
)
from agentstream.utils.errors import AgentStreamError, ErrorHandler, error_handler

logger = logging.getLogger(__name__)

_SCHEDULER_TYPES = {
    Channel.ANSWER: AnswerScheduler,
    Channel.REASONING: ReasoningScheduler,
    Channel.TOOL_OUTPUT: ToolOutputScheduler,
}

# Handled without registering a session that does not exist yet
_PASSIVE_EVENTS = (ev.StreamError, ev.ShutdownComplete)

_SINK_APPENDERS = {
    Channel.ANSWER: "append_answer",
    Channel.REASONING: "append_reasoning",
    Channel.TOOL_OUTPUT: "append_tool_output",
}


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


@dataclass
class SessionStreams:
    """Explicit per-session state: channel schedulers plus turn bookkeeping."""

    session_id: str
    channels: Dict[Channel, ChannelScheduler] = field(default_factory=dict)
    model: Optional[str] = None
    turn_open: bool = False
    turns_completed: int = 0
    conversation_ready: bool = False
    decoder: codecs.IncrementalDecoder = field(default_factory=_utf8_decoder)


class SessionStreamCoordinator:
    """Owns the channel schedulers of every session and applies events to them."""

    def __init__(
        self,
        sink: StreamSink,
        clock: Optional[Clock] = None,
        config: Optional[PacingConfig] = None,
        errors: Optional[ErrorHandler] = None,
    ):
        self.sink = sink
        self.clock = clock or LoopClock()
        self.config = config or PacingConfig()
        self.errors = errors or error_handler
        self.sessions: Dict[str, SessionStreams] = {}
        self._handlers: Dict[type, Callable[[SessionStreams, Any], None]] = {
            ev.TurnStarted: self._on_turn_started,
            ev.TurnComplete: self._on_turn_complete,
            ev.TaskComplete: self._on_turn_complete,
            ev.ErrorEvent: self._on_error,
            ev.Abort: self._on_abort,
            ev.AnswerDelta: self._on_answer_delta,
            ev.AnswerSnapshot: self._on_answer_snapshot,
            ev.ReasoningDelta: self._on_reasoning_delta,
            ev.ReasoningSnapshot: self._on_reasoning_snapshot,
            ev.ReasoningSectionBreak: self._on_reasoning_section_break,
            ev.ExecBegin: self._on_exec_begin,
            ev.ExecOutputDelta: self._on_exec_output_delta,
            ev.ExecEnd: self._on_exec_end,
            ev.BackgroundNote: self._on_background_note,
            ev.SessionConfigured: self._on_session_configured,
            ev.ShutdownComplete: self._on_shutdown_complete,
            ev.StreamError: self._on_stream_error,
            ev.ExecApprovalRequest: self._on_approval_request,
            ev.PatchApprovalRequest: self._on_approval_request,
            ev.ApplyPatchApprovalRequest: self._on_approval_request,
        }

    # --- Session / channel state ---

    def session(self, session_id: str, create: bool = False) -> Optional[SessionStreams]:
        streams = self.sessions.get(session_id)
        if streams is None and create:
            streams = SessionStreams(session_id=session_id)
            self.sessions[session_id] = streams
        return streams

    def channel(self, session_id: str, channel: Channel) -> ChannelScheduler:
        """Return the scheduler for (session, channel), creating both lazily."""
        streams = self.session(session_id, create=True)
        scheduler = streams.channels.get(channel)
        if scheduler is None:
            scheduler = _SCHEDULER_TYPES[channel](
                self.clock,
                self._emitter(session_id, channel),
                config=self.config,
            )
            streams.channels[channel] = scheduler
            logger.debug(f"Created {channel.value} channel for session {session_id}")
        return scheduler

    def _emitter(self, session_id: str, channel: Channel) -> Callable[[str, bool], None]:
        method = _SINK_APPENDERS[channel]

        def emit(text: str, streaming: bool) -> None:
            if session_id not in self.sessions:
                logger.debug(f"Dropping release for closed session {session_id}")
                return
            self._call_sink(method, session_id, text, streaming)

        return emit

    # --- Public API ---

    def on_event(self, session_id: str, event: Any) -> bool:
        """Apply one event. Returns True if it was handled."""
        try:
            parsed = ev.parse_event(event)
        except AgentStreamError as e:
            logger.warning(f"Ignoring event for session {session_id}: {e}")
            return False
        if parsed is None:
            return False

        handler = self._handlers.get(type(parsed))
        if handler is None:
            logger.warning(f"No handler for event type {getattr(parsed, 'type', type(parsed).__name__)}")
            return False

        streams = self.session(session_id, create=not isinstance(parsed, _PASSIVE_EVENTS))
        if streams is None:
            streams = SessionStreams(session_id=session_id)
        try:
            handler(streams, parsed)
        except Exception as e:
            self.errors.log_error(e, context={"session_id": session_id, "event": self._describe(parsed)})
            return False
        return True

    def on_stderr(self, session_id: str, line: str) -> bool:
        """Surface a stderr line from the agent process unless it is diagnostic noise."""
        text = clean_stderr_line(line)
        if text is None:
            return False
        self.session(session_id, create=True)
        self._call_sink("add_system_message", session_id, f"Error: {text}")
        self._call_sink("set_loading", session_id, False)
        return True

    def reset(self, session_id: str) -> None:
        """Clear every channel of the session and cancel its scheduled work. Idempotent."""
        streams = self.sessions.get(session_id)
        if streams is None:
            return
        for scheduler in streams.channels.values():
            scheduler.reset()
        streams.decoder.reset()

    def drain(self, session_id: str) -> None:
        """Force out all pending text of the session, marking each channel final."""
        streams = self.sessions.get(session_id)
        if streams is None:
            return
        tail = streams.decoder.decode(b"", final=True)
        if tail and Channel.TOOL_OUTPUT in streams.channels:
            streams.channels[Channel.TOOL_OUTPUT].on_delta(tail)
        for scheduler in streams.channels.values():
            scheduler.drain()
        streams.decoder.reset()

    def close_session(self, session_id: str) -> None:
        """Cancel everything for the session and forget it."""
        streams = self.sessions.pop(session_id, None)
        if streams is None:
            return
        for scheduler in streams.channels.values():
            scheduler.close()
        logger.info(f"Closed stream session {session_id}")

    def close(self) -> None:
        for session_id in list(self.sessions):
            self.close_session(session_id)

    # --- Lifecycle handlers ---

    def _on_turn_started(self, streams: SessionStreams, event: ev.TurnStarted) -> None:
        self.reset(streams.session_id)
        streams.turn_open = True
        self._call_sink("set_loading", streams.session_id, True)

    def _on_turn_complete(self, streams: SessionStreams, event: Any) -> None:
        session_id = streams.session_id
        answer = streams.channels.get(Channel.ANSWER)
        fallback = getattr(event, "last_agent_message", None)
        if fallback and streams.turn_open and (answer is None or answer.buffer.appended_chars == 0):
            self._call_sink("replace_answer", session_id, fallback, False)

        self.drain(session_id)
        self._call_sink("set_loading", session_id, False)
        if streams.turn_open:
            streams.turn_open = False
            streams.turns_completed += 1
            self._call_sink("snapshot", session_id)
        logger.info(f"Turn complete for session {session_id} ({event.type})")

    def _on_error(self, streams: SessionStreams, event: ev.ErrorEvent) -> None:
        self.drain(streams.session_id)
        streams.turn_open = False
        self._call_sink("add_system_message", streams.session_id, f"Error: {event.message}")
        self._call_sink("set_loading", streams.session_id, False)

    def _on_abort(self, streams: SessionStreams, event: ev.Abort) -> None:
        self.drain(streams.session_id)
        streams.turn_open = False
        self._call_sink("set_loading", streams.session_id, False)
        logger.info(f"Turn aborted for session {streams.session_id}: {event.reason or 'no reason given'}")

    # --- Answer / reasoning handlers ---

    def _on_answer_delta(self, streams: SessionStreams, event: ev.AnswerDelta) -> None:
        streams.turn_open = True
        self.channel(streams.session_id, Channel.ANSWER).on_delta(event.text)

    def _on_answer_snapshot(self, streams: SessionStreams, event: ev.AnswerSnapshot) -> None:
        if not event.text:
            return
        streams.turn_open = True
        answer = streams.channels.get(Channel.ANSWER)
        if answer is not None:
            answer.settle()
        self._call_sink("replace_answer", streams.session_id, event.text, False)

    def _on_reasoning_delta(self, streams: SessionStreams, event: ev.ReasoningDelta) -> None:
        streams.turn_open = True
        self.channel(streams.session_id, Channel.REASONING).on_delta(event.text)

    def _on_reasoning_snapshot(self, streams: SessionStreams, event: ev.ReasoningSnapshot) -> None:
        if not event.text:
            return
        streams.turn_open = True
        reasoning = streams.channels.get(Channel.REASONING)
        if reasoning is not None:
            reasoning.settle()
        self._call_sink("replace_reasoning", streams.session_id, event.text, False)

    def _on_reasoning_section_break(self, streams: SessionStreams, event: ev.ReasoningSectionBreak) -> None:
        reasoning = streams.channels.get(Channel.REASONING)
        if reasoning is not None and reasoning.active:
            reasoning.on_delta("\n\n")

    # --- Tool output handlers ---

    def _on_exec_begin(self, streams: SessionStreams, event: ev.ExecBegin) -> None:
        streams.turn_open = True
        self.channel(streams.session_id, Channel.TOOL_OUTPUT).on_delta(f"\n$ {event.command_line}\n")

    def _on_exec_output_delta(self, streams: SessionStreams, event: ev.ExecOutputDelta) -> None:
        text = streams.decoder.decode(event.chunk)
        if text:
            self.channel(streams.session_id, Channel.TOOL_OUTPUT).on_delta(text)

    def _on_exec_end(self, streams: SessionStreams, event: ev.ExecEnd) -> None:
        tool = self.channel(streams.session_id, Channel.TOOL_OUTPUT)
        tail = streams.decoder.decode(b"", final=True)
        streams.decoder.reset()
        tool.on_delta(f"{tail}\n[exit {event.exit_code}]\n")
        tool.finish()

    def _on_background_note(self, streams: SessionStreams, event: ev.BackgroundNote) -> None:
        self.channel(streams.session_id, Channel.TOOL_OUTPUT).on_delta(f"\n[info] {event.text}\n")

    # --- Session handlers ---

    def _on_session_configured(self, streams: SessionStreams, event: ev.SessionConfigured) -> None:
        streams.model = event.model
        logger.info(f"Session configured: {event.session_id or streams.session_id} (model={event.model})")

    def _on_shutdown_complete(self, streams: SessionStreams, event: ev.ShutdownComplete) -> None:
        logger.info(f"Session shutdown completed: {streams.session_id}")
        self.close_session(streams.session_id)

    def _on_stream_error(self, streams: SessionStreams, event: ev.StreamError) -> None:
        logger.warning(f"Transient stream error for session {streams.session_id}: {event.message}")

    def _on_approval_request(self, streams: SessionStreams, event: Any) -> None:
        self._call_sink("request_approval", streams.session_id, event.to_request())

    # --- Helpers ---

    def _call_sink(self, method: str, session_id: str, *args: Any) -> None:
        streams = self.sessions.get(session_id)
        if streams is not None and not streams.conversation_ready:
            streams.conversation_ready = True
            self._invoke_sink("ensure_conversation", session_id)
        self._invoke_sink(method, session_id, *args)

    def _invoke_sink(self, method: str, session_id: str, *args: Any) -> None:
        try:
            getattr(self.sink, method)(session_id, *args)
        except Exception as e:
            self.errors.log_error(e, context={"session_id": session_id, "sink_method": method})

    @staticmethod
    def _describe(event: BaseModel) -> Dict[str, Any]:
        return {"type": getattr(event, "type", type(event).__name__)}
