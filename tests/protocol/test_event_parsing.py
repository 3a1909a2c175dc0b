"""Tests for event validation, wire aliases and stderr filtering."""

import pytest

from agentstream.protocol.events import (
    EVENT_TYPES,
    AnswerDelta,
    AnswerSnapshot,
    ApprovalRequest,
    ApplyPatchApprovalRequest,
    ExecBegin,
    ExecOutputDelta,
    ReasoningDelta,
    ReasoningSnapshot,
    TurnStarted,
    normalize_event,
    parse_event,
)
from agentstream.protocol.stderr import clean_stderr_line
from agentstream.utils.errors import MalformedEventError, UnknownEventError


class TestParseEvent:

    def test_native_event(self):
        event = parse_event({"type": "answer_delta", "text": "Hi"})
        assert isinstance(event, AnswerDelta)
        assert event.text == "Hi"

    def test_model_passthrough(self):
        event = TurnStarted()
        assert parse_event(event) is event

    def test_extra_fields_ignored(self):
        event = parse_event({"type": "turn_started", "model_context_window": 128000})
        assert isinstance(event, TurnStarted)

    def test_unknown_type(self):
        with pytest.raises(UnknownEventError) as exc:
            parse_event({"type": "teleport"})
        assert exc.value.code == "UNKNOWN_EVENT"
        assert exc.value.details == {"event_type": "teleport"}

    def test_missing_type(self):
        with pytest.raises(UnknownEventError):
            parse_event({"text": "orphan"})

    def test_invalid_payload(self):
        with pytest.raises(MalformedEventError) as exc:
            parse_event({"type": "exec_end", "exit_code": "not a number"})
        assert exc.value.code == "MALFORMED_EVENT"
        assert exc.value.details["errors"]

    @pytest.mark.parametrize(
        "raw",
        [{"type": ["answer_delta"]}, {"type": {"x": 1}}, {"type": 7}, {"msg": {"type": ["a"]}}],
    )
    def test_non_string_type(self, raw):
        with pytest.raises(MalformedEventError) as exc:
            parse_event(raw)
        assert "must be a string" in str(exc.value)

    def test_normalize_keeps_non_string_type(self):
        assert normalize_event({"msg": {"type": {"x": 1}}}) == {"type": {"x": 1}}

    def test_non_mapping(self):
        with pytest.raises(MalformedEventError):
            parse_event(["answer_delta"])

    @pytest.mark.parametrize("event_type", ["token_count", "mcp_tool_call_begin", "turn_diff", "plan_update"])
    def test_informational_events_ignored(self, event_type):
        assert parse_event({"type": event_type}) is None

    def test_events_are_frozen(self):
        event = parse_event({"type": "answer_delta", "text": "Hi"})
        with pytest.raises(Exception):
            event.text = "changed"

    def test_protocol_event_types(self):
        assert {"turn_started", "turn_complete", "task_complete", "error", "abort"} <= EVENT_TYPES
        assert {"answer_delta", "reasoning_delta", "exec_begin", "exec_output_delta", "exec_end"} <= EVENT_TYPES


class TestWireAliases:

    def test_envelope_is_unwrapped(self):
        event = parse_event({"id": "42", "msg": {"type": "agent_message_delta", "delta": "Hel"}})
        assert isinstance(event, AnswerDelta)
        assert event.text == "Hel"
        assert event.event_id == "42"

    @pytest.mark.parametrize(
        "raw, model",
        [
            ({"type": "task_started"}, TurnStarted),
            ({"type": "agent_reasoning_delta", "delta": "x"}, ReasoningDelta),
            ({"type": "agent_reasoning_raw_content_delta", "delta": "x"}, ReasoningDelta),
            ({"type": "exec_command_begin", "command": ["git", "status"]}, ExecBegin),
        ],
    )
    def test_wire_names(self, raw, model):
        assert isinstance(parse_event(raw), model)

    def test_full_message_prefers_last_agent_message(self):
        event = parse_event({"type": "agent_message", "message": "draft", "last_agent_message": "final"})
        assert isinstance(event, AnswerSnapshot)
        assert event.text == "final"

    def test_full_reasoning(self):
        event = parse_event({"type": "agent_reasoning_raw_content", "content": "raw thoughts"})
        assert isinstance(event, ReasoningSnapshot)
        assert event.text == "raw thoughts"

    def test_background_event_message(self):
        payload = normalize_event({"type": "background_event", "message": "Indexing"})
        assert payload == {"type": "background_note", "text": "Indexing"}

    def test_normalize_leaves_input_untouched(self):
        raw = {"type": "agent_message_delta", "delta": "x"}
        normalize_event(raw)
        assert raw == {"type": "agent_message_delta", "delta": "x"}


class TestExecPayloads:

    def test_command_line_from_list(self):
        assert parse_event({"type": "exec_begin", "command": ["ls", "-la"]}).command_line == "ls -la"

    def test_command_line_from_string(self):
        assert parse_event({"type": "exec_begin", "command": "ls -la"}).command_line == "ls -la"

    @pytest.mark.parametrize(
        "chunk, expected",
        [
            ([104, 105], b"hi"),
            (b"hi", b"hi"),
            ("hé", "hé".encode("utf-8")),
            (None, b""),
        ],
    )
    def test_chunk_formats(self, chunk, expected):
        event = parse_event({"type": "exec_output_delta", "chunk": chunk})
        assert isinstance(event, ExecOutputDelta)
        assert event.chunk == expected

    def test_bytes_field_alias(self):
        assert parse_event({"type": "exec_output_delta", "bytes": [111, 107]}).chunk == b"ok"

    def test_invalid_byte_values(self):
        with pytest.raises(MalformedEventError):
            parse_event({"type": "exec_output_delta", "chunk": [300]})


class TestApprovals:

    def test_apply_patch_request(self):
        event = parse_event(
            {
                "id": "9",
                "msg": {
                    "type": "apply_patch_approval_request",
                    "call_id": "c1",
                    "changes": {"a.py": {"add": "print(1)"}},
                    "reason": "needs write access",
                },
            }
        )
        assert isinstance(event, ApplyPatchApprovalRequest)
        request = event.to_request()
        assert isinstance(request, ApprovalRequest)
        assert request.type == "apply_patch"
        assert request.id == "9"
        assert request.call_id == "c1"
        assert request.reason == "needs write access"


# =============================================================================
# STDERR
# =============================================================================

class TestCleanStderrLine:

    def test_strips_ansi(self):
        assert clean_stderr_line("\x1b[1;31mError:\x1b[0m disk full\n") == "Error: disk full"

    @pytest.mark.parametrize(
        "line",
        [
            "2025-05-01T10:00:00Z INFO codex_core: starting",
            "\x1b[33mWARN\x1b[0m slow response",
            "cwd not set, using default",
            "resume_path: None",
            "Aborting existing session",
            "stream disconnected - retrying turn (1/5)",
            "",
            "  \n",
        ],
    )
    def test_noise_is_dropped(self, line):
        assert clean_stderr_line(line) is None
