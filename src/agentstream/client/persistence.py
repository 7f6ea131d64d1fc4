"""JSON conversation store keyed by thread id."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

from ..chat.message_model import Turn
from ..utils.file_io import read_json, write_json
from .state import AssistantSessionState

LOGGER = logging.getLogger(__name__)

_SNAPSHOT_VERSION = 1
_DEFAULT_CONVERSATIONS_DIR = Path.home() / ".agentstream" / "conversations"
_THREAD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")
_TITLE_LIMIT = 60


class HistoryAdoptionError(ValueError):
    """Raised when a saved payload cannot become session history."""


@dataclass(slots=True)
class SavedConversation:
    thread_id: str
    messages: List[Turn]
    metadata: Dict[str, Any] = field(default_factory=dict)
    title: str = ""
    updated_at: str = ""


@dataclass(slots=True, frozen=True)
class ThreadSummary:
    thread_id: str
    title: str
    updated_at: str
    message_count: int


class ConversationStore:
    """Persist committed messages plus opaque metadata, one file per thread."""

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self._base_dir = Path(base_dir).expanduser() if base_dir else _DEFAULT_CONVERSATIONS_DIR

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def path_for(self, thread_id: str) -> Path:
        if not _THREAD_ID_PATTERN.match(thread_id or ""):
            raise ValueError(f"Invalid thread id: {thread_id!r}")
        return self._base_dir / f"{thread_id}.json"

    def save(
        self,
        state: AssistantSessionState,
        *,
        metadata: Mapping[str, Any] | None = None,
        title: str | None = None,
    ) -> Path:
        snapshot = state.to_snapshot(metadata=metadata)
        snapshot["version"] = _SNAPSHOT_VERSION
        snapshot["title"] = title or derive_title(state.messages)
        snapshot["updatedAt"] = datetime.now(timezone.utc).isoformat()
        path = write_json(self.path_for(state.thread_id), snapshot)
        LOGGER.debug("Saved conversation %s (%s message(s))", state.thread_id, len(state.messages))
        return path

    def load(self, thread_id: str) -> SavedConversation:
        """Read a saved thread.

        Raises ``FileNotFoundError`` when the thread was never saved and
        :class:`HistoryAdoptionError` when its content is unusable.
        """

        path = self.path_for(thread_id)
        try:
            payload = read_json(path)
        except ValueError as exc:
            raise HistoryAdoptionError(str(exc)) from exc
        return parse_snapshot(payload, fallback_thread_id=thread_id)

    def list_threads(self) -> List[ThreadSummary]:
        """Summaries of every readable saved thread, newest first."""

        if not self._base_dir.exists():
            return []
        summaries: List[ThreadSummary] = []
        for path in self._base_dir.glob("*.json"):
            try:
                payload = read_json(path)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Skipping unreadable conversation %s: %s", path.name, exc)
                continue
            if not isinstance(payload, Mapping):
                LOGGER.warning("Skipping conversation %s: not an object", path.name)
                continue
            messages = payload.get("messages")
            summaries.append(
                ThreadSummary(
                    thread_id=str(payload.get("threadId") or path.stem),
                    title=str(payload.get("title") or ""),
                    updated_at=str(payload.get("updatedAt") or ""),
                    message_count=len(messages) if isinstance(messages, list) else 0,
                )
            )
        summaries.sort(key=lambda item: item.updated_at, reverse=True)
        return summaries

    def delete(self, thread_id: str) -> bool:
        path = self.path_for(thread_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        LOGGER.debug("Deleted conversation %s", thread_id)
        return True


def parse_snapshot(payload: Any, *, fallback_thread_id: str | None = None) -> SavedConversation:
    """Validate a saved payload and rebuild its turns."""

    if not isinstance(payload, Mapping):
        raise HistoryAdoptionError("Saved conversation must be a JSON object")
    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list):
        raise HistoryAdoptionError("Saved conversation has no messages list")
    try:
        messages = [Turn.from_dict(item) for item in raw_messages]
    except (TypeError, ValueError, AttributeError) as exc:
        raise HistoryAdoptionError(f"Saved conversation contains an invalid message: {exc}") from exc
    metadata = payload.get("metadata")
    thread_id = payload.get("threadId") or fallback_thread_id
    if not thread_id:
        raise HistoryAdoptionError("Saved conversation has no thread id")
    return SavedConversation(
        thread_id=str(thread_id),
        messages=messages,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        title=str(payload.get("title") or ""),
        updated_at=str(payload.get("updatedAt") or ""),
    )


def derive_title(messages: List[Turn]) -> str:
    for turn in messages:
        if turn.role == "user" and turn.text.strip():
            text = " ".join(turn.text.split())
            return text if len(text) <= _TITLE_LIMIT else text[: _TITLE_LIMIT - 3].rstrip() + "..."
    return "New conversation"


__all__ = [
    "ConversationStore",
    "HistoryAdoptionError",
    "SavedConversation",
    "ThreadSummary",
    "derive_title",
    "parse_snapshot",
]
