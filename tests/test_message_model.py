"""Tests for conversation turns and their wire representation."""

from __future__ import annotations

import pytest

from agentstream.chat.message_model import (
    FileAttachmentPart,
    TextPart,
    ToolCallPart,
    Turn,
    part_from_dict,
)


class TestTurn:
    """Turn construction, text handling and serialization."""

    def test_user_turn_without_text_keeps_only_attachments(self) -> None:
        attachment = FileAttachmentPart(file_id="f1", name="notes.txt", path="/tmp/notes.txt")

        turn = Turn.user("", [attachment])

        assert turn.parts == [attachment]
        assert not turn.is_empty()

    def test_blank_text_turn_is_empty(self) -> None:
        assert Turn.user("").is_empty()
        assert Turn.assistant([TextPart("")]).is_empty()

    def test_tool_result_turn_is_never_empty(self) -> None:
        call = ToolCallPart(tool_call_id="c1", tool_name="echo")

        assert not Turn.tool_result_for(call, None).is_empty()

    def test_append_text_grows_a_single_text_part(self) -> None:
        turn = Turn.assistant()

        turn.append_text("Hello")
        turn.append_text(" world")

        assert len(turn.parts) == 1
        assert turn.text == "Hello world"

    def test_append_text_after_tool_call_reuses_first_text_part(self) -> None:
        turn = Turn.assistant([TextPart("Let me check."), ToolCallPart(tool_call_id="c1", tool_name="echo")])

        turn.append_text(" Done.")

        assert [type(part) for part in turn.parts] == [TextPart, ToolCallPart]
        assert turn.text == "Let me check. Done."

    def test_clone_is_independent(self) -> None:
        call = ToolCallPart(tool_call_id="c1", tool_name="echo")
        turn = Turn.assistant([call])

        copy = turn.clone()
        copy.tool_calls[0].set_result({"ok": True})

        assert not turn.tool_calls[0].completed
        assert copy.id == turn.id

    def test_round_trip_preserves_tool_call_result(self) -> None:
        call = ToolCallPart(tool_call_id="c1", tool_name="echo", args={"text": "hi"}, args_text='{"text": "hi"}')
        call.set_result(None)
        turn = Turn.assistant([TextPart("Calling"), call])

        rebuilt = Turn.from_dict(turn.to_dict())

        assert rebuilt.id == turn.id
        assert rebuilt.created_at == turn.created_at
        restored = rebuilt.find_tool_call("c1")
        assert restored is not None
        assert restored.completed
        assert restored.result is None
        assert restored.args == {"text": "hi"}

    def test_tool_result_turn_serializes_reference(self) -> None:
        call = ToolCallPart(tool_call_id="c9", tool_name="fail")

        payload = Turn.tool_result_for(call, {"error": "boom"}, is_error=True).to_dict()

        assert payload["role"] == "tool-result"
        assert payload["toolCallId"] == "c9"
        assert payload["isError"] is True
        assert "content" not in payload

    def test_from_dict_rejects_unknown_role(self) -> None:
        with pytest.raises(ValueError, match="Unknown turn role"):
            Turn.from_dict({"role": "robot", "content": []})

    def test_from_dict_requires_tool_call_id_for_results(self) -> None:
        with pytest.raises(ValueError, match="toolCallId"):
            Turn.from_dict({"role": "tool-result", "result": 1})

    def test_string_content_becomes_text_part(self) -> None:
        turn = Turn.from_dict({"role": "user", "content": "hi"})

        assert turn.parts == [TextPart("hi")]


class TestPartFromDict:
    def test_unknown_part_type_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown content part type"):
            part_from_dict({"type": "video"})

    def test_tool_call_without_result_is_pending(self) -> None:
        part = part_from_dict({"type": "tool-call", "toolCallId": "c1", "toolName": "echo"})

        assert isinstance(part, ToolCallPart)
        assert not part.completed

    def test_attachment_accepts_legacy_field_names(self) -> None:
        part = part_from_dict({"type": "file-attachment", "name": "a.png", "path": "/a.png", "fileData": "AAA"})

        assert isinstance(part, FileAttachmentPart)
        assert part.name == "a.png"
        assert part.data == "AAA"
        assert part.file_id.startswith("file-")
