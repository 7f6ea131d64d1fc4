"""Tests for the client event reducer."""

from __future__ import annotations

import pytest

from agentstream.chat.message_model import Turn
from agentstream.client import reducer
from agentstream.client.persistence import ConversationStore
from agentstream.client.state import AssistantSessionState
from agentstream.protocol.events import (
    CompletionSummary,
    Done,
    ErrorEvent,
    MessageEnd,
    MessageStart,
    StepProgression,
    TextDelta,
    Thinking,
    ToolCallEvent,
    ToolResultEvent,
    ToolStatus,
    UnknownEvent,
)


def _started(text: str = "hello") -> AssistantSessionState:
    state = reducer.begin_send(reducer.reset("thread-test"), Turn.user(text))
    return reducer.apply(state, MessageStart())


class TestApply:
    """Folding individual events into the current turn."""

    def test_message_start_opens_an_assistant_turn(self) -> None:
        state = _started()

        assert state.is_loading
        assert state.current_turn_index == 1
        assert state.current_turn is not None
        assert state.current_turn.role == "assistant"
        assert state.current_turn.parts == []

    @pytest.mark.parametrize(
        "deltas",
        [["Hel", "lo", " world"], ["single"], ["a ", "\n\n", "b"], []],
    )
    def test_text_part_is_concatenation_of_deltas(self, deltas: list[str]) -> None:
        events = [TextDelta(text) for text in deltas] + [MessageEnd()]

        state = reducer.apply_all(_started(), events)

        committed = [turn for turn in state.messages if turn.role == "assistant"]
        assert len(committed) == 1
        assert committed[0].text == "".join(deltas)
        text_parts = [part for part in committed[0].parts if part.kind == "text"]
        assert len(text_parts) == (1 if deltas else 0)

    def test_apply_does_not_mutate_previous_state(self) -> None:
        before = reducer.apply(_started(), TextDelta("one"))

        after = reducer.apply(before, TextDelta(" two"))

        assert before.current_turn.text == "one"  # type: ignore[union-attr]
        assert after.current_turn.text == "one two"  # type: ignore[union-attr]

    def test_delta_shares_untouched_parts_with_previous_state(self) -> None:
        rows = {"rows": list(range(1000))}
        before = reducer.apply_all(
            _started(),
            [
                ToolCallEvent(tool_call_id="c1", tool_name="echo"),
                ToolResultEvent(tool_call_id="c1", tool_name="echo", result=rows),
                TextDelta("Found"),
            ],
        )

        after = reducer.apply(before, TextDelta(" it"))

        old_turn, new_turn = before.current_turn, after.current_turn
        assert old_turn is not None and new_turn is not None
        assert new_turn is not old_turn
        assert new_turn.id == old_turn.id
        assert new_turn.find_tool_call("c1") is old_turn.find_tool_call("c1")
        assert new_turn.tool_calls[0].result is rows
        assert after.messages[0] is before.messages[0]
        assert (old_turn.text, new_turn.text) == ("Found", "Found it")

    def test_tool_result_leaves_previous_part_unanswered(self) -> None:
        before = reducer.apply(_started(), ToolCallEvent(tool_call_id="c1", tool_name="echo"))

        after = reducer.apply(before, ToolResultEvent(tool_call_id="c1", tool_name="echo", result="ok"))

        assert not before.current_turn.tool_calls[0].completed  # type: ignore[union-attr]
        assert after.current_turn.tool_calls[0].result == "ok"  # type: ignore[union-attr]

    def test_tool_result_fills_part_and_clears_progress(self) -> None:
        state = reducer.apply_all(
            _started(),
            [
                ToolCallEvent(tool_call_id="c1", tool_name="echo", args={"text": "x"}),
                ToolCallEvent(tool_call_id="c2", tool_name="echo"),
            ],
        )
        assert state.tools_in_progress == {"c1", "c2"}

        state = reducer.apply(state, ToolResultEvent(tool_call_id="c1", tool_name="echo", result={"echo": "x"}))

        part = state.current_turn.find_tool_call("c1")  # type: ignore[union-attr]
        assert part is not None and part.result == {"echo": "x"} and part.completed
        assert state.tools_in_progress == {"c2"}
        assert state.pending_tool_count == 1

    def test_duplicate_tool_call_is_ignored(self) -> None:
        event = ToolCallEvent(tool_call_id="c1", tool_name="echo")

        state = reducer.apply_all(_started(), [event, event])

        assert len(state.current_turn.tool_calls) == 1  # type: ignore[union-attr]

    def test_result_for_unknown_call_changes_nothing_but_progress(self) -> None:
        state = _started()

        updated = reducer.apply(state, ToolResultEvent(tool_call_id="ghost", tool_name="echo", result=1))

        assert updated.messages == state.messages

    def test_error_result_is_marked(self) -> None:
        state = reducer.apply_all(
            _started(),
            [
                ToolCallEvent(tool_call_id="c1", tool_name="fail"),
                ToolResultEvent(tool_call_id="c1", tool_name="fail", result={"error": "tool_error"}, is_error=True),
            ],
        )

        assert state.current_turn.tool_calls[0].is_error  # type: ignore[union-attr]

    def test_advisory_events_only_touch_progress_fields(self) -> None:
        state = _started()
        messages = state.messages

        state = reducer.apply_all(
            state,
            [
                Thinking("Processing step 1..."),
                StepProgression(step=1, total_steps=100),
                ToolStatus(tool_call_id="c1", tool="web_search", message="Searching the web..."),
                CompletionSummary(total_steps=1, tool_executions=0),
                UnknownEvent(type="sparkle"),
            ],
        )

        assert state.messages == messages
        assert state.thinking_message == "Searching the web..."
        assert (state.current_step, state.total_steps) == (1, 100)
        assert state.completion_summary == {"totalSteps": 1, "toolExecutions": 0, "toolsUsed": []}

    def test_message_end_commits_turn(self) -> None:
        state = reducer.apply_all(
            _started(),
            [ToolCallEvent(tool_call_id="c1", tool_name="echo"), TextDelta("ok"), MessageEnd(reason="max-steps")],
        )

        assert not state.is_loading
        assert state.current_turn_index is None
        assert state.tools_in_progress == frozenset()
        assert state.stop_reason == "max-steps"
        assert state.error is None
        assert state.messages[-1].text == "ok"

    def test_error_keeps_partial_content(self) -> None:
        state = reducer.apply_all(_started(), [TextDelta("partial"), ErrorEvent("boom"), Done()])

        assert state.error == "boom"
        assert not state.is_loading
        assert state.messages[-1].text == "partial"

    def test_events_without_current_turn_are_ignored(self) -> None:
        state = reducer.reset("t")

        assert reducer.apply(state, TextDelta("stray")) == state

    def test_unsupported_event_raises(self) -> None:
        with pytest.raises(TypeError):
            reducer.apply(reducer.reset("t"), object())  # type: ignore[arg-type]


class TestUserActions:
    """Abort, retry, load and save transitions."""

    def test_abort_keeps_partial_text(self) -> None:
        state = reducer.apply_all(_started(), [TextDelta("Hello "), TextDelta("wor")])

        aborted = reducer.abort(state)

        assert not aborted.is_loading
        assert aborted.error is None
        assert aborted.stop_reason == "cancelled"
        assert aborted.messages[-1].text == "Hello wor"

    def test_abort_is_idempotent(self) -> None:
        state = reducer.apply_all(_started(), [TextDelta("x"), ToolCallEvent(tool_call_id="c1", tool_name="echo")])

        once = reducer.abort(state)
        twice = reducer.abort(once)

        assert twice == once

    def test_abort_when_idle_is_a_no_op(self) -> None:
        state = reducer.reset("t")

        assert reducer.abort(state) is state

    def test_fail_transport_matches_error_event(self) -> None:
        state = reducer.apply(_started(), TextDelta("so far"))

        assert reducer.fail_transport(state, "Connection reset") == reducer.apply(state, ErrorEvent("Connection reset"))

    def test_prepare_retry_trims_after_last_user_turn(self) -> None:
        state = reducer.apply_all(_started("question"), [TextDelta("bad"), ErrorEvent("boom")])

        trimmed, user_turn = reducer.prepare_retry(state)

        assert user_turn.text == "question"
        assert trimmed.messages == []
        assert trimmed.error is None

    def test_prepare_retry_without_user_turn_raises(self) -> None:
        with pytest.raises(ValueError):
            reducer.prepare_retry(reducer.reset("t"))

    def test_save_then_load_round_trip(self, tmp_path, tool_history: list[Turn]) -> None:
        state = reducer.load(tool_history, thread_id="thread-rt")
        store = ConversationStore(tmp_path)

        store.save(state, metadata={"documentId": "doc-1"})
        saved = store.load("thread-rt")
        restored = reducer.load(saved.messages, thread_id=saved.thread_id)

        assert restored.messages == state.messages
        assert not restored.is_loading
        assert saved.metadata == {"documentId": "doc-1"}

    def test_load_copies_turns(self, tool_history: list[Turn]) -> None:
        state = reducer.load(tool_history)

        state.messages[0].parts.clear()

        assert tool_history[0].text == "Say hi through the tool"
