"""Shared pytest fixtures."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from agentstream.chat.message_model import TextPart, ToolCallPart, Turn


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings, logs and conversations out of the real home directory."""

    monkeypatch.setenv("AGENTSTREAM_LOG_DIR", str(tmp_path / "logs"))
    for name in list(os.environ):
        if name.startswith("AGENTSTREAM_") and name != "AGENTSTREAM_LOG_DIR":
            monkeypatch.delenv(name, raising=False)
    logging.getLogger("agentstream").setLevel(logging.DEBUG)


@pytest.fixture
def tool_history() -> list[Turn]:
    """User question, assistant tool call, its result and a final answer."""

    call = ToolCallPart(tool_call_id="call-1", tool_name="echo", args={"text": "hi"})
    return [
        Turn.user("Say hi through the tool"),
        Turn.assistant([call]),
        Turn.tool_result_for(call, {"echo": "hi"}),
        Turn.assistant([TextPart("The tool said hi.")]),
    ]
