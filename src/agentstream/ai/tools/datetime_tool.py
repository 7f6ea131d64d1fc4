"""Current date and time tool."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..orchestration.tools.types import ToolSpec

DATETIME_SPEC = ToolSpec(
    name="get_current_datetime",
    description="Return the current date, time and timezone.",
    parameters={
        "type": "object",
        "properties": {
            "timezone": {
                "type": "string",
                "description": "IANA timezone name such as 'Europe/Paris'. Defaults to UTC.",
            }
        },
    },
    preference_key="get_current_datetime",
    status_message="Checking the current date and time...",
)


class CurrentDateTimeTool:
    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return DATETIME_SPEC.name

    @property
    def spec(self) -> ToolSpec:
        return DATETIME_SPEC

    async def execute(self, arguments: Mapping[str, Any]) -> dict[str, str]:
        zone_name = str(arguments.get("timezone") or "UTC").strip() or "UTC"
        now = self._clock().astimezone(_resolve_zone(zone_name))
        current_date = now.strftime("%A, %B %d, %Y")
        current_time = now.strftime("%I:%M %p")
        return {
            "currentDate": current_date,
            "currentTime": current_time,
            "timezone": zone_name,
            "isoString": now.isoformat(),
            "formatted": f"{current_date} at {current_time} ({zone_name})",
        }


def _resolve_zone(name: str) -> tzinfo:
    # UTC must work on hosts without a tz database.
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


__all__ = ["CurrentDateTimeTool", "DATETIME_SPEC"]
