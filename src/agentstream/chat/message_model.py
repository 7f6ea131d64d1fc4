"""Conversation turn and content part data models."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Iterator, List, Literal, Mapping, Optional, Sequence, Union


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def new_id(prefix: str = "") -> str:
    token = uuid.uuid4().hex[:16]
    return f"{prefix}{token}" if prefix else token


TurnRole = Literal["system", "user", "assistant", "tool-result"]
TURN_ROLES: tuple[str, ...] = ("system", "user", "assistant", "tool-result")


@dataclass(slots=True)
class TextPart:
    """A run of assistant or user text."""

    kind: ClassVar[str] = "text"

    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "text": self.text}


@dataclass(slots=True)
class ToolCallPart:
    """A tool invocation requested by the model, optionally carrying its result.

    ``completed`` flips from ``False`` to ``True`` once a result is attached.
    ``result`` may legitimately be ``None`` for a completed call, so the flag,
    not the value, decides whether the call has been answered.
    """

    kind: ClassVar[str] = "tool-call"

    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = field(default_factory=dict)
    args_text: Optional[str] = None
    result: Any = None
    completed: bool = False
    is_error: bool = False

    @property
    def has_result(self) -> bool:
        return self.completed

    def set_result(self, result: Any, *, is_error: bool = False) -> None:
        self.result = result
        self.is_error = bool(is_error)
        self.completed = True

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.kind,
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "args": dict(self.args),
        }
        if self.args_text is not None:
            payload["argsText"] = self.args_text
        if self.completed:
            payload["result"] = self.result
            if self.is_error:
                payload["isError"] = True
        return payload


@dataclass(slots=True)
class FileAttachmentPart:
    """A file the user attached to their message."""

    kind: ClassVar[str] = "file-attachment"

    file_id: str
    name: str
    path: str = ""
    data: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.kind,
            "fileId": self.file_id,
            "fileName": self.name,
            "filePath": self.path,
        }
        if self.data is not None:
            payload["data"] = self.data
        if self.mime_type:
            payload["mimeType"] = self.mime_type
        if self.size is not None:
            payload["size"] = self.size
        return payload


Part = Union[TextPart, ToolCallPart, FileAttachmentPart]


@dataclass(slots=True)
class Turn:
    """One role-tagged entry of a conversation.

    Assistant, user and system turns carry an ordered list of parts.
    ``tool-result`` turns carry the answer for one tool call instead and
    reference it through ``tool_call_id``.
    """

    role: TurnRole
    parts: List[Part] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    result: Any = None
    is_error: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def system(cls, text: str) -> "Turn":
        return cls(role="system", parts=[TextPart(text)])

    @classmethod
    def user(cls, text: str, attachments: Sequence[FileAttachmentPart] = ()) -> "Turn":
        parts: List[Part] = []
        if text:
            parts.append(TextPart(text))
        parts.extend(attachments)
        return cls(role="user", parts=parts)

    @classmethod
    def assistant(cls, parts: Sequence[Part] = ()) -> "Turn":
        return cls(role="assistant", parts=list(parts))

    @classmethod
    def tool_result_for(
        cls,
        call: ToolCallPart,
        result: Any,
        *,
        is_error: bool = False,
    ) -> "Turn":
        return cls(
            role="tool-result",
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            result=result,
            is_error=is_error,
        )

    @property
    def text(self) -> str:
        return "\n\n".join(part.text for part in self.parts if isinstance(part, TextPart) and part.text)

    @property
    def tool_calls(self) -> List[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    @property
    def attachments(self) -> List[FileAttachmentPart]:
        return [part for part in self.parts if isinstance(part, FileAttachmentPart)]

    def iter_parts(self) -> Iterator[Part]:
        return iter(self.parts)

    def text_part(self) -> TextPart | None:
        for part in self.parts:
            if isinstance(part, TextPart):
                return part
        return None

    def append_text(self, delta: str) -> None:
        """Concatenate ``delta`` onto this turn's single text part."""

        part = self.text_part()
        if part is None:
            self.parts.append(TextPart(delta))
        else:
            part.text += delta

    def find_tool_call(self, tool_call_id: str) -> ToolCallPart | None:
        for part in self.parts:
            if isinstance(part, ToolCallPart) and part.tool_call_id == tool_call_id:
                return part
        return None

    def is_empty(self) -> bool:
        if self.role == "tool-result":
            return False
        return not any(
            not isinstance(part, TextPart) or part.text for part in self.parts
        )

    def clone(self) -> "Turn":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the turn for the wire and for persistence."""

        payload: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "createdAt": self.created_at.isoformat(),
        }
        if self.role == "tool-result":
            payload["toolCallId"] = self.tool_call_id
            payload["toolName"] = self.tool_name
            payload["result"] = self.result
            if self.is_error:
                payload["isError"] = True
        else:
            payload["content"] = [part.to_dict() for part in self.parts]
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Turn":
        """Rebuild a turn serialized by :meth:`to_dict`.

        Raises ``ValueError`` for unknown roles or part types.
        """

        role = payload.get("role")
        if role not in TURN_ROLES:
            raise ValueError(f"Unknown turn role: {role!r}")
        kwargs: Dict[str, Any] = {"role": role}
        turn_id = payload.get("id")
        if turn_id:
            kwargs["id"] = str(turn_id)
        created = payload.get("createdAt")
        if isinstance(created, str) and created:
            kwargs["created_at"] = datetime.fromisoformat(created)
        if role == "tool-result":
            call_id = payload.get("toolCallId")
            if not call_id:
                raise ValueError("tool-result turn is missing toolCallId")
            kwargs["tool_call_id"] = str(call_id)
            kwargs["tool_name"] = payload.get("toolName")
            kwargs["result"] = payload.get("result")
            kwargs["is_error"] = bool(payload.get("isError", False))
        else:
            content = payload.get("content") or []
            if isinstance(content, str):
                kwargs["parts"] = [TextPart(content)] if content else []
            else:
                kwargs["parts"] = [part_from_dict(item) for item in content]
        return cls(**kwargs)


def part_from_dict(payload: Mapping[str, Any]) -> Part:
    """Rebuild a part from its camelCase wire representation."""

    if not isinstance(payload, Mapping):
        raise ValueError(f"Content part must be an object, got {type(payload).__name__}")
    kind = payload.get("type")
    if kind == TextPart.kind:
        return TextPart(str(payload.get("text") or ""))
    if kind == ToolCallPart.kind:
        call_id = payload.get("toolCallId")
        name = payload.get("toolName")
        if not call_id or not name:
            raise ValueError("tool-call part requires toolCallId and toolName")
        args = payload.get("args")
        part = ToolCallPart(
            tool_call_id=str(call_id),
            tool_name=str(name),
            args=dict(args) if isinstance(args, Mapping) else {},
            args_text=payload.get("argsText"),
        )
        if "result" in payload:
            part.set_result(payload.get("result"), is_error=bool(payload.get("isError", False)))
        return part
    if kind == FileAttachmentPart.kind:
        size = payload.get("size")
        return FileAttachmentPart(
            file_id=str(payload.get("fileId") or new_id("file-")),
            name=str(payload.get("fileName") or payload.get("name") or "attachment"),
            path=str(payload.get("filePath") or payload.get("path") or ""),
            data=payload.get("data") or payload.get("fileData"),
            mime_type=payload.get("mimeType"),
            size=int(size) if isinstance(size, (int, float)) else None,
        )
    raise ValueError(f"Unknown content part type: {kind!r}")


__all__ = [
    "FileAttachmentPart",
    "Part",
    "TURN_ROLES",
    "TextPart",
    "ToolCallPart",
    "Turn",
    "TurnRole",
    "new_id",
    "part_from_dict",
]
