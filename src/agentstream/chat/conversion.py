"""Conversion between client messages, conversation turns and provider messages."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import mimetypes
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .message_model import (
    FileAttachmentPart,
    Part,
    TextPart,
    ToolCallPart,
    Turn,
    new_id,
    part_from_dict,
)

LOGGER = logging.getLogger(__name__)

_ROLE_ALIASES: Mapping[str, str] = {
    "system": "system",
    "user": "user",
    "assistant": "assistant",
    "tool": "tool-result",
    "tool-result": "tool-result",
}
_INLINE_TEXT_TYPES = ("application/json", "application/xml", "application/x-yaml")
_INLINE_TEXT_LIMIT = 200_000


def normalize_messages(messages: Iterable[Mapping[str, Any]]) -> List[Turn]:
    """Turn client message payloads into :class:`Turn` objects.

    Accepts string or list ``content``, folds legacy ``attachments`` arrays
    into ``file-attachment`` parts and drops messages that end up empty.
    Raises ``ValueError`` for payloads that are not objects or carry an
    unknown role.
    """

    turns: List[Turn] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise ValueError(f"Message {index} must be an object")
        raw_role = str(message.get("role") or "")
        role = _ROLE_ALIASES.get(raw_role)
        if role is None:
            raise ValueError(f"Message {index} has unknown role {raw_role!r}")
        if role == "tool-result":
            turns.append(Turn.from_dict({**message, "role": role}))
            continue

        content = message.get("content")
        parts: List[Part] = []
        if isinstance(content, str):
            if content:
                parts.append(TextPart(content))
        elif isinstance(content, Sequence):
            parts.extend(part_from_dict(item) for item in content)
        parts.extend(_legacy_attachments(message.get("attachments")))

        payload = dict(message)
        payload.pop("attachments", None)
        payload["role"] = role
        payload["content"] = []
        turn = Turn.from_dict(payload)
        turn.parts = parts
        if turn.is_empty():
            LOGGER.debug("Dropping empty %s message at index %s", role, index)
            continue
        turns.append(turn)
    return turns


def _legacy_attachments(payload: Any) -> List[FileAttachmentPart]:
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return []
    parts: List[FileAttachmentPart] = []
    for item in payload:
        if not isinstance(item, Mapping):
            continue
        file_id = item.get("fileId") or item.get("id") or item.get("file_id")
        name = item.get("fileName") or item.get("name")
        path = item.get("filePath") or item.get("path")
        if not file_id or not name or not path:
            continue
        parts.append(
            FileAttachmentPart(
                file_id=str(file_id),
                name=str(name),
                path=str(path),
                data=item.get("fileData") or item.get("data"),
                mime_type=item.get("mimeType"),
            )
        )
    return parts


def find_unpaired_tool_calls(turns: Sequence[Turn]) -> List[str]:
    """Return ids of tool calls that are not answered before the next assistant turn.

    A tool-call part counts as answered when it carries its own result or
    when one of the ``tool-result`` turns that directly follow its assistant
    turn references it.
    """

    unpaired: List[str] = []
    for index, turn in enumerate(turns):
        if turn.role != "assistant":
            continue
        answered = _following_result_ids(turns, index)
        for call in turn.tool_calls:
            if not call.completed and call.tool_call_id not in answered:
                unpaired.append(call.tool_call_id)
    return unpaired


def _following_result_ids(turns: Sequence[Turn], index: int) -> set[str]:
    ids: set[str] = set()
    for turn in turns[index + 1 :]:
        if turn.role != "tool-result":
            break
        if turn.tool_call_id:
            ids.add(turn.tool_call_id)
    return ids


def to_model_messages(turns: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Render turns as OpenAI chat-completions messages.

    Only answered tool calls are sent; each assistant message with tool calls
    is immediately followed by one ``tool`` message per call.
    """

    messages: List[Dict[str, Any]] = []
    sent_call_ids: set[str] = set()
    for index, turn in enumerate(turns):
        if turn.role == "system":
            text = turn.text
            if text:
                messages.append({"role": "system", "content": text})
        elif turn.role == "user":
            message = _user_message(turn)
            if message is not None:
                messages.append(message)
        elif turn.role == "assistant":
            answered = _following_result_ids(turns, index)
            messages.extend(_assistant_messages(turn, answered, sent_call_ids))
        elif turn.role == "tool-result":
            if turn.tool_call_id not in sent_call_ids:
                LOGGER.debug("Skipping tool result %s with no matching call", turn.tool_call_id)
                continue
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.tool_call_id,
                    "content": stringify_result(turn.result),
                }
            )
            sent_call_ids.discard(turn.tool_call_id or "")
    return messages


def _assistant_messages(
    turn: Turn,
    answered: set[str],
    sent_call_ids: set[str],
) -> List[Dict[str, Any]]:
    text = turn.text
    calls = [
        call for call in turn.tool_calls if call.completed or call.tool_call_id in answered
    ]
    if not calls:
        return [{"role": "assistant", "content": text}] if text else []

    message: Dict[str, Any] = {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": call.tool_call_id,
                "type": "function",
                "function": {
                    "name": call.tool_name,
                    "arguments": json.dumps(call.args, ensure_ascii=False),
                },
            }
            for call in calls
        ],
    }
    messages = [message]
    for call in calls:
        if call.tool_call_id in answered:
            # The explicit tool-result turn that follows supplies the answer.
            sent_call_ids.add(call.tool_call_id)
            continue
        messages.append(
            {
                "role": "tool",
                "tool_call_id": call.tool_call_id,
                "content": stringify_result(call.result),
            }
        )
    return messages


def _user_message(turn: Turn) -> Dict[str, Any] | None:
    text = "\n\n".join(part.text for part in turn.parts if isinstance(part, TextPart) and part.text)
    attachments = turn.attachments
    if not attachments:
        return {"role": "user", "content": text} if text else None

    images: List[Dict[str, Any]] = []
    blocks: List[str] = [text] if text else []
    for attachment in attachments:
        mime_type = _resolve_mime_type(attachment)
        if attachment.data and mime_type.startswith("image/"):
            images.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{attachment.data}"},
                }
            )
            continue
        inline = _inline_text(attachment, mime_type)
        if inline is not None:
            blocks.append(f"Attachment: {attachment.name}\n```\n{inline}\n```")
        else:
            blocks.append(attachment_summary(attachment))

    combined = "\n\n".join(blocks) or "User attached files."
    if not images:
        return {"role": "user", "content": combined}
    return {"role": "user", "content": [{"type": "text", "text": combined}, *images]}


def attachment_summary(attachment: FileAttachmentPart) -> str:
    """One-line description used when an attachment cannot be inlined."""

    size_hint = ""
    if attachment.data:
        size_kb = round(len(attachment.data) * 3 / 4 / 1024)
        size_hint = f" (~{size_kb} KB)"
    elif attachment.size is not None:
        size_hint = f" (~{round(attachment.size / 1024)} KB)"
    return f"Attachment: {attachment.name or 'Unnamed file'}{size_hint}"


def _resolve_mime_type(attachment: FileAttachmentPart) -> str:
    mime_type = (attachment.mime_type or "").strip().lower()
    if mime_type and mime_type != "application/octet-stream":
        return mime_type
    guessed, _ = mimetypes.guess_type(attachment.name)
    return guessed or mime_type or "application/octet-stream"


def _inline_text(attachment: FileAttachmentPart, mime_type: str) -> str | None:
    if not attachment.data:
        return None
    if not (mime_type.startswith("text/") or mime_type in _INLINE_TEXT_TYPES):
        return None
    try:
        raw = base64.b64decode(attachment.data, validate=True)
    except (binascii.Error, ValueError):
        LOGGER.debug("Attachment %s is not valid base64; summarizing instead", attachment.name)
        return None
    if len(raw) > _INLINE_TEXT_LIMIT:
        return None
    return raw.decode("utf-8", errors="replace")


def stringify_result(result: Any) -> str:
    """Render a tool result as the string content of a ``tool`` message."""

    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(result)


def make_attachment(name: str, data: bytes, *, mime_type: str | None = None, path: str = "") -> FileAttachmentPart:
    """Build a base64-encoded attachment part from raw bytes."""

    resolved = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
    return FileAttachmentPart(
        file_id=new_id("file-"),
        name=name,
        path=path or name,
        data=base64.b64encode(data).decode("ascii"),
        mime_type=resolved,
        size=len(data),
    )


__all__ = [
    "attachment_summary",
    "find_unpaired_tool_calls",
    "make_attachment",
    "normalize_messages",
    "stringify_result",
    "to_model_messages",
]
