"""Tests for stream event encoding and NDJSON framing."""

from __future__ import annotations

import json

import pytest

from agentstream.protocol.events import (
    CompletionSummary,
    Done,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    StepProgression,
    StreamDecodeError,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    ToolStatus,
    UnknownEvent,
    decode_event,
)
from agentstream.protocol.framing import LineDecoder, decode_line, encode_line


class TestEventEncoding:
    """Wire shapes of individual events."""

    def test_tool_call_record_has_no_result(self) -> None:
        payload = ToolCallEvent(tool_call_id="c1", tool_name="echo", args={"text": "hi"}).to_dict()

        assert payload == {
            "type": "tool-call",
            "part": {"type": "tool-call", "toolCallId": "c1", "toolName": "echo", "args": {"text": "hi"}},
        }

    def test_tool_result_record_correlates_by_id(self) -> None:
        payload = ToolResultEvent(tool_call_id="c1", tool_name="echo", result=None).to_dict()

        assert payload["part"]["toolCallId"] == "c1"
        assert payload["part"]["result"] is None
        assert payload["part"]["isError"] is False

    def test_message_end_carries_reason(self) -> None:
        payload = MessageEnd(reason="max-steps").to_dict()

        assert payload == {"type": "message-end", "status": {"type": "complete", "reason": "max-steps"}}
        assert MessageEnd(reason="max-steps").truncated

    def test_decode_rebuilds_every_known_event(self) -> None:
        events = [
            MessageStart(),
            TextDelta(text="hi "),
            ToolCallEvent(tool_call_id="c1", tool_name="echo", args={"a": 1}, args_text='{"a": 1}'),
            ToolResultEvent(tool_call_id="c1", tool_name="echo", result={"ok": True}, is_error=True),
            ToolStatus(tool_call_id="c1", tool="echo", message="Echoing..."),
            StepProgression(step=2, total_steps=5),
            CompletionSummary(total_steps=2, tool_executions=1, tools_used=["echo"]),
            MessageEnd(reason="stop"),
            ErrorEvent(error="boom"),
            Done(),
        ]

        assert [decode_event(event.to_dict()) for event in events] == events

    def test_unknown_type_is_preserved(self) -> None:
        event = decode_event({"type": "sparkle", "level": 3})

        assert isinstance(event, UnknownEvent)
        assert event.type == "sparkle"
        assert event.payload["level"] == 3

    @pytest.mark.parametrize(
        "payload",
        [
            {"text": "missing type"},
            {"type": "tool-call"},
            {"type": "step-progression", "step": "x", "totalSteps": 1},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_records_raise(self, payload: object) -> None:
        with pytest.raises(StreamDecodeError):
            decode_event(payload)  # type: ignore[arg-type]


class TestFraming:
    """Record framing and incremental decoding."""

    def test_encode_line_is_single_terminated_record(self) -> None:
        line = encode_line(TextDelta(text="line\nbreak ünïcode"))

        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1
        assert json.loads(line) == {"type": "text-delta", "text": "line\nbreak ünïcode"}

    def test_decode_line_rejects_invalid_json(self) -> None:
        with pytest.raises(StreamDecodeError, match="Invalid JSON"):
            decode_line("{not json")

    def test_partial_records_wait_for_completion(self) -> None:
        decoder = LineDecoder()
        wire = encode_line(TextDelta(text="Hello ")) + encode_line(Done())

        first = decoder.feed(wire[:10])
        second = decoder.feed(wire[10:])

        assert first == []
        assert second == [TextDelta(text="Hello "), Done()]
        assert decoder.pending == ""

    def test_split_multibyte_character_is_reassembled(self) -> None:
        decoder = LineDecoder()
        wire = encode_line(TextDelta(text="é"))
        cut = wire.index("é".encode("utf-8")) + 1

        events = decoder.feed(wire[:cut]) + decoder.feed(wire[cut:])

        assert events == [TextDelta(text="é")]

    def test_blank_lines_are_ignored(self) -> None:
        decoder = LineDecoder()

        assert decoder.feed(b"\n\n" + encode_line(Done()) + b"\n") == [Done()]

    def test_trailing_record_is_only_decoded_on_close(self) -> None:
        decoder = LineDecoder()

        assert decoder.feed(b'{"type":"done"}') == []
        assert decoder.close() == [Done()]
        assert decoder.close() == []

    def test_truncated_trailing_record_raises_on_close(self) -> None:
        decoder = LineDecoder()
        decoder.feed(b'{"type":"text-del')

        with pytest.raises(StreamDecodeError):
            decoder.close()
