"""Per-run JSONL trace of the agent loop, written when debug event logging is on.

Each run gets its own file under ``<log dir>/events``. The first line holds
the request context; later lines record every model step, tool batch and
the final outcome, so a misbehaving run can be replayed by reading one file.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Mapping, Sequence

from ...utils import logging as logging_utils

LOGGER = logging.getLogger(__name__)

_UNFINISHED = "run ended without completion"


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return list(value)
    return repr(value)


@dataclass(slots=True)
class NullChatEventLogRun:
    """Stand-in used when event logging is off or the file could not be opened."""

    path: Path | None = None

    def __enter__(self) -> "NullChatEventLogRun":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False

    def log_assistant_message(self, *_: Any, **__: Any) -> None:
        pass

    def log_tool_batch(self, *_: Any, **__: Any) -> None:
        pass

    def log_completion(self, *_: Any, **__: Any) -> None:
        pass

    def log_failure(self, *_: Any, **__: Any) -> None:
        pass


class ChatEventLogRun:
    """One open trace file; closes itself on completion or failure."""

    def __init__(self, path: Path, *, context: Mapping[str, Any]) -> None:
        self.path = path
        self._stream: IO[str] | None = path.open("w", encoding="utf-8")
        self._append("start", context)

    def __enter__(self) -> "ChatEventLogRun":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.finalized:
            message = (str(exc) or type(exc).__name__) if exc is not None else _UNFINISHED
            self.log_failure(message=message)
        return False

    @property
    def finalized(self) -> bool:
        return self._stream is None

    def log_assistant_message(
        self,
        *,
        turn_index: int,
        response_text: str,
        tool_calls: Sequence[Mapping[str, Any]] | None,
    ) -> None:
        self._append(
            "assistant",
            {"turn_index": turn_index, "response_text": response_text, "tool_calls": list(tool_calls or ())},
        )

    def log_tool_batch(self, *, turn_index: int, records: Sequence[Mapping[str, Any]]) -> None:
        if records:
            self._append("tools", {"turn_index": turn_index, "records": list(records)})

    def log_completion(
        self,
        *,
        response_text: str,
        tool_call_count: int,
        warnings: Sequence[str] | None = None,
    ) -> None:
        self._close_with(
            "completion",
            {
                "status": "success",
                "response_text": response_text,
                "tool_call_count": tool_call_count,
                "warnings": list(warnings or ()),
            },
        )

    def log_failure(self, *, message: str, details: Mapping[str, Any] | None = None) -> None:
        payload: dict[str, Any] = {"status": "failure", "message": message}
        if details:
            payload["details"] = dict(details)
        self._close_with("failure", payload)

    def _close_with(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._stream is None:
            return
        self._append(event, payload)
        self._stream.close()
        self._stream = None

    def _append(self, event: str, payload: Mapping[str, Any]) -> None:
        if self._stream is None:
            return
        line = json.dumps(
            {"event": event, "timestamp": time.time(), **payload},
            ensure_ascii=False,
            default=_json_default,
        )
        self._stream.write(line + "\n")
        self._stream.flush()


class ChatEventLogger:
    """Opens a :class:`ChatEventLogRun` per request when enabled."""

    def __init__(self, *, enabled: bool, base_dir: Path | str | None = None) -> None:
        self.enabled = bool(enabled)
        self._base_dir = Path(base_dir) if base_dir else self._default_dir()

    @staticmethod
    def _default_dir() -> Path:
        log_path = logging_utils.get_log_path()
        root = log_path.parent if log_path is not None else Path.home() / ".agentstream" / "logs"
        return root / "events"

    def start_run(
        self,
        *,
        run_id: str,
        thread_id: str | None,
        history: Sequence[Mapping[str, Any]] | None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ChatEventLogRun | NullChatEventLogRun:
        if not self.enabled:
            return NullChatEventLogRun()
        context = {
            "run_id": run_id,
            "thread_id": thread_id,
            "metadata": dict(metadata or {}),
            "history": list(history or ()),
        }
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            run = ChatEventLogRun(self._path_for(run_id), context=context)
        except OSError:
            LOGGER.warning("Could not open event log in %s", self._base_dir, exc_info=True)
            return NullChatEventLogRun()
        LOGGER.debug("Writing agent events to %s", run.path)
        return run

    def _path_for(self, run_id: str) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = "".join(ch for ch in run_id if ch.isalnum())[:12] or "run"
        return self._base_dir / f"run-{stamp}-{slug}.jsonl"


__all__ = [
    "ChatEventLogger",
    "ChatEventLogRun",
    "NullChatEventLogRun",
]
