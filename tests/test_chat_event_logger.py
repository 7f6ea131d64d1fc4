"""Tests for the per-run JSONL event log."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from agentstream.ai.orchestration.event_log import ChatEventLogger, NullChatEventLogRun


def _entries(path: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_disabled_logger_returns_null_run(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=False, base_dir=tmp_path)

    run = logger.start_run(run_id="abc", thread_id="t", history=[])

    assert isinstance(run, NullChatEventLogRun)
    assert list(tmp_path.iterdir()) == []


def test_run_records_milestones(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)

    with logger.start_run(run_id="run-42!", thread_id="thread-1", history=[{"role": "user"}]) as run:
        run.log_assistant_message(turn_index=1, response_text="", tool_calls=[{"name": "echo"}])
        run.log_tool_batch(turn_index=1, records=[{"name": "echo", "result": b"raw"}])
        run.log_tool_batch(turn_index=1, records=[])
        run.log_completion(response_text="done", tool_call_count=1)

    assert run.path is not None
    assert run.path.name.startswith("run-") and run.path.name.endswith("run42.jsonl")
    entries = _entries(run.path)
    assert [entry["event"] for entry in entries] == ["start", "assistant", "tools", "completion"]
    assert entries[0]["thread_id"] == "thread-1"
    assert entries[2]["records"][0]["result"] == "raw"
    assert entries[-1]["status"] == "success"


def test_exception_inside_run_is_logged_as_failure(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)

    with pytest.raises(RuntimeError):
        with logger.start_run(run_id="x", thread_id=None, history=None) as run:
            raise RuntimeError("model exploded")

    entries = _entries(run.path)  # type: ignore[arg-type]
    assert entries[-1]["event"] == "failure"
    assert entries[-1]["message"] == "model exploded"


def test_unfinished_run_is_closed_as_failure(tmp_path: Path) -> None:
    logger = ChatEventLogger(enabled=True, base_dir=tmp_path)

    with logger.start_run(run_id="x", thread_id=None, history=None) as run:
        pass

    assert _entries(run.path)[-1]["message"] == "run ended without completion"  # type: ignore[arg-type]


def test_unwritable_directory_falls_back_to_null_run(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")

    run = ChatEventLogger(enabled=True, base_dir=blocker / "events").start_run(run_id="x", thread_id=None, history=None)

    assert isinstance(run, NullChatEventLogRun)
