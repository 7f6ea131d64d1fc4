"""System prompt templates for the agent loop."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..chat.message_model import Turn

SYSTEM_PROMPT = (
    "You are a helpful AI assistant with access to tools. "
    "Use web_search when the user asks about recent events or facts you are unsure of, "
    "and provide clear citations (title and URL) when you rely on search results. "
    "Use get_current_datetime when the answer depends on today's date or time. "
    "If a tool returns an error, explain what went wrong or try a different approach. "
    "When you have enough information, answer directly without calling more tools."
)

DOCUMENT_CONTEXT_HEADER = "The user is working with the following document context:"


def format_date_time_context(context: Mapping[str, Any] | str | None) -> str:
    """Return the sentence appended to the system prompt for ``context``."""

    if not context:
        return ""
    if isinstance(context, str):
        return f"Current date and time: {context.strip()}."
    formatted = str(context.get("formatted") or "").strip()
    iso = str(context.get("isoString") or context.get("iso_string") or "").strip()
    if not formatted and not iso:
        return ""
    parts = []
    if formatted:
        parts.append(f"Current date and time: {formatted}.")
    if iso:
        parts.append(f"ISO timestamp: {iso}")
    return " ".join(parts)


def system_prompt(*, date_time_context: Mapping[str, Any] | str | None = None) -> str:
    suffix = format_date_time_context(date_time_context)
    if not suffix:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\n\n{suffix}"


def build_system_turns(
    history: Sequence[Turn] = (),
    *,
    date_time_context: Mapping[str, Any] | str | None = None,
    document_context: str | None = None,
) -> list[Turn]:
    """Return the system turns placed before ``history`` for one request.

    The fixed prompt is skipped when the caller already supplied a system
    turn of their own. Document context, when present, always follows as a
    separate system turn.
    """

    turns: list[Turn] = []
    if not any(turn.role == "system" for turn in history):
        turns.append(Turn.system(system_prompt(date_time_context=date_time_context)))
    context = (document_context or "").strip()
    if context:
        turns.append(Turn.system(f"{DOCUMENT_CONTEXT_HEADER}\n\n{context}"))
    return turns


__all__ = [
    "DOCUMENT_CONTEXT_HEADER",
    "SYSTEM_PROMPT",
    "build_system_turns",
    "format_date_time_context",
    "system_prompt",
]
