"""Typed events consumed by the stream coordinator.

Events arrive either as model instances or as raw dictionaries. Raw input may
use the external agent's own wire names (``agent_message_delta``,
``exec_command_begin`` ...) and may be wrapped in an ``{"id": ..., "msg": {...}}``
envelope; ``parse_event`` normalizes both before validating.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from agentstream.utils.errors import MalformedEventError, UnknownEventError

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    event_id: Optional[str] = Field(None, description="Envelope id assigned by the transport.")


# ---------------------------------------------------------------------------
# Turn lifecycle
# ---------------------------------------------------------------------------

class TurnStarted(_Event):
    type: Literal["turn_started"] = "turn_started"


class TurnComplete(_Event):
    type: Literal["turn_complete"] = "turn_complete"
    response_id: Optional[str] = None


class TaskComplete(_Event):
    type: Literal["task_complete"] = "task_complete"
    response_id: Optional[str] = None
    last_agent_message: Optional[str] = None


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    message: str = ""


class Abort(_Event):
    type: Literal["abort"] = "abort"
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Answer and reasoning channels
# ---------------------------------------------------------------------------

class AnswerDelta(_Event):
    type: Literal["answer_delta"] = "answer_delta"
    text: str = ""


class AnswerSnapshot(_Event):
    type: Literal["answer_snapshot"] = "answer_snapshot"
    text: str = ""


class ReasoningDelta(_Event):
    type: Literal["reasoning_delta"] = "reasoning_delta"
    text: str = ""


class ReasoningSnapshot(_Event):
    type: Literal["reasoning_snapshot"] = "reasoning_snapshot"
    text: str = ""


class ReasoningSectionBreak(_Event):
    type: Literal["reasoning_section_break"] = "reasoning_section_break"


# ---------------------------------------------------------------------------
# Tool output channel
# ---------------------------------------------------------------------------

class ExecBegin(_Event):
    type: Literal["exec_begin"] = "exec_begin"
    command: Union[str, List[str]] = ""
    call_id: Optional[str] = None
    cwd: Optional[str] = None

    @property
    def command_line(self) -> str:
        if isinstance(self.command, list):
            return " ".join(self.command)
        return self.command


class ExecOutputDelta(_Event):
    type: Literal["exec_output_delta"] = "exec_output_delta"
    chunk: bytes = b""
    call_id: Optional[str] = None
    stream: Optional[str] = None

    @field_validator("chunk", mode="before")
    @classmethod
    def _coerce_chunk(cls, value: Any) -> bytes:
        # Wire formats seen: list of byte values, raw bytes, already-decoded text
        if value is None:
            return b""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, list):
            try:
                return bytes(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"chunk is not a list of byte values: {e}") from e
        if isinstance(value, str):
            return value.encode("utf-8")
        raise ValueError(f"unsupported chunk type {type(value).__name__}")


class ExecEnd(_Event):
    type: Literal["exec_end"] = "exec_end"
    exit_code: int = 0
    call_id: Optional[str] = None


class BackgroundNote(_Event):
    type: Literal["background_note"] = "background_note"
    text: str = ""


# ---------------------------------------------------------------------------
# Session and approval events
# ---------------------------------------------------------------------------

class SessionConfigured(_Event):
    type: Literal["session_configured"] = "session_configured"
    session_id: Optional[str] = None
    model: Optional[str] = None


class ShutdownComplete(_Event):
    type: Literal["shutdown_complete"] = "shutdown_complete"


class StreamError(_Event):
    type: Literal["stream_error"] = "stream_error"
    message: str = ""


class ApprovalRequest(BaseModel):
    """A request from the agent that needs a user decision."""

    id: Optional[str] = None
    type: Literal["exec", "patch", "apply_patch"]
    command: Optional[str] = None
    cwd: Optional[str] = None
    patch: Optional[str] = None
    files: Optional[List[str]] = None
    call_id: Optional[str] = None
    changes: Optional[Any] = None
    reason: Optional[str] = None
    grant_root: Optional[str] = None


class ExecApprovalRequest(_Event):
    type: Literal["exec_approval_request"] = "exec_approval_request"
    call_id: Optional[str] = None
    command: Union[str, List[str]] = ""
    cwd: Optional[str] = None

    def to_request(self) -> ApprovalRequest:
        command = " ".join(self.command) if isinstance(self.command, list) else self.command
        return ApprovalRequest(id=self.event_id, type="exec", command=command, cwd=self.cwd, call_id=self.call_id)


class PatchApprovalRequest(_Event):
    type: Literal["patch_approval_request"] = "patch_approval_request"
    patch: Optional[str] = None
    files: List[str] = Field(default_factory=list)

    def to_request(self) -> ApprovalRequest:
        return ApprovalRequest(id=self.event_id, type="patch", patch=self.patch, files=list(self.files))


class ApplyPatchApprovalRequest(_Event):
    type: Literal["apply_patch_approval_request"] = "apply_patch_approval_request"
    call_id: Optional[str] = None
    changes: Optional[Any] = None
    reason: Optional[str] = None
    grant_root: Optional[str] = None

    def to_request(self) -> ApprovalRequest:
        return ApprovalRequest(
            id=self.event_id,
            type="apply_patch",
            call_id=self.call_id,
            changes=self.changes,
            reason=self.reason,
            grant_root=self.grant_root,
        )


EVENT_MODELS = (
    TurnStarted,
    TurnComplete,
    TaskComplete,
    ErrorEvent,
    Abort,
    AnswerDelta,
    AnswerSnapshot,
    ReasoningDelta,
    ReasoningSnapshot,
    ReasoningSectionBreak,
    ExecBegin,
    ExecOutputDelta,
    ExecEnd,
    BackgroundNote,
    SessionConfigured,
    ShutdownComplete,
    StreamError,
    ExecApprovalRequest,
    PatchApprovalRequest,
    ApplyPatchApprovalRequest,
)

AgentEvent = Annotated[Union[EVENT_MODELS], Field(discriminator="type")]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(AgentEvent)

EVENT_TYPES = frozenset(model.model_fields["type"].default for model in EVENT_MODELS)

# Informational wire events that carry nothing for the reveal engine
IGNORED_EVENT_TYPES = frozenset({
    "token_count",
    "mcp_tool_call_begin",
    "mcp_tool_call_end",
    "web_search_begin",
    "web_search_end",
    "patch_apply_begin",
    "patch_apply_end",
    "plan_update",
    "turn_diff",
})

# wire type -> (event type, {wire field: event field})
WIRE_ALIASES: Dict[str, tuple] = {
    "task_started": ("turn_started", {}),
    "turn_aborted": ("abort", {}),
    "agent_message_delta": ("answer_delta", {"delta": "text"}),
    "agent_reasoning_delta": ("reasoning_delta", {"delta": "text"}),
    "agent_reasoning_raw_content_delta": ("reasoning_delta", {"delta": "text"}),
    "agent_reasoning_section_break": ("reasoning_section_break", {}),
    "exec_command_begin": ("exec_begin", {}),
    "exec_command_output_delta": ("exec_output_delta", {}),
    "exec_command_end": ("exec_end", {}),
    "background_event": ("background_note", {"message": "text"}),
    "exec_output_delta": ("exec_output_delta", {"bytes": "chunk"}),
}


def _first_text(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if value:
            return value
    return ""


def normalize_event(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap envelopes and translate wire names into event names."""
    payload = dict(raw)
    if isinstance(payload.get("msg"), dict):
        envelope_id = payload.get("id")
        payload = dict(payload["msg"])
        if envelope_id is not None:
            payload.setdefault("event_id", str(envelope_id))

    event_type = payload.get("type")
    if not isinstance(event_type, str):
        return payload

    # Full-message variants pick whichever text field the producer filled in
    if event_type == "agent_message":
        return {
            "type": "answer_snapshot",
            "event_id": payload.get("event_id"),
            "text": _first_text(payload, "last_agent_message", "message"),
        }
    if event_type in ("agent_reasoning", "agent_reasoning_raw_content"):
        return {
            "type": "reasoning_snapshot",
            "event_id": payload.get("event_id"),
            "text": _first_text(payload, "text", "reasoning", "content"),
        }

    alias = WIRE_ALIASES.get(event_type)
    if alias is not None:
        new_type, renames = alias
        payload["type"] = new_type
        for old, new in renames.items():
            if old in payload and new not in payload:
                payload[new] = payload.pop(old)
    return payload


def parse_event(raw: Union[Dict[str, Any], BaseModel]) -> Optional[BaseModel]:
    """Validate one incoming event.

    Returns:
        The typed event, or None for informational events that are ignored.

    Raises:
        UnknownEventError: the type is not part of the protocol
        MalformedEventError: the payload does not validate
    """
    if isinstance(raw, BaseModel):
        return raw
    if not isinstance(raw, dict):
        raise MalformedEventError(f"Event must be a mapping, got {type(raw).__name__}")

    payload = normalize_event(raw)
    event_type = payload.get("type")
    if event_type is not None and not isinstance(event_type, str):
        raise MalformedEventError(f"Event type must be a string, got {type(event_type).__name__}")
    if event_type in IGNORED_EVENT_TYPES:
        logger.debug(f"Ignoring informational event {event_type}")
        return None
    if event_type not in EVENT_TYPES:
        raise UnknownEventError(event_type)

    try:
        return EVENT_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise MalformedEventError(
            f"Invalid {event_type} event: {e.error_count()} validation error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e
