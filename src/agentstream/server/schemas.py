"""Request models for the streaming endpoint."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class DateTimeContext(BaseModel):
    """Client clock reading appended to the system prompt."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    current_date: str | None = Field(default=None, alias="currentDate")
    current_time: str | None = Field(default=None, alias="currentTime")
    timezone: str | None = None
    iso_string: str | None = Field(default=None, alias="isoString")
    formatted: str | None = None

    def as_prompt_context(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class StreamRequestBody(BaseModel):
    """One user turn: full committed history plus the new user message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: List[Dict[str, Any]] = Field(min_length=1)
    thread_id: str | None = Field(default=None, alias="threadId")
    tool_preferences: Dict[str, Any] = Field(default_factory=dict, alias="toolPreferences")
    document_context: str | None = Field(default=None, alias="documentContext")
    date_time_context: DateTimeContext | None = Field(default=None, alias="dateTimeContext")
    max_steps: int | None = Field(default=None, alias="maxSteps", ge=1)
    recursion_limit: int | None = Field(default=None, alias="recursionLimit", ge=1)

    @property
    def step_budget(self) -> int | None:
        return self.max_steps if self.max_steps is not None else self.recursion_limit


def describe_validation_error(error: ValidationError) -> str:
    """Return a single-line summary of the first few validation problems."""

    problems = []
    for item in error.errors()[:3]:
        location = ".".join(str(part) for part in item.get("loc", ())) or "body"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid request: " + "; ".join(problems)


__all__ = ["DateTimeContext", "StreamRequestBody", "describe_validation_error"]
