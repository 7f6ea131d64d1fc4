"""Required-argument checks applied before a tool is dispatched."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

__all__ = ["MissingToolArgumentsError", "ensure_tool_arguments", "missing_tool_arguments"]


class MissingToolArgumentsError(ValueError):
    """Raised when the model omits arguments a tool cannot run without."""

    def __init__(self, tool_name: str, missing_args: Sequence[str]) -> None:
        self.tool_name = tool_name
        self.missing_args = list(missing_args)
        super().__init__(
            f'Tool "{tool_name}" is missing required arguments: {", ".join(self.missing_args)}'
        )


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def missing_tool_arguments(required: Sequence[str], arguments: Mapping[str, Any] | None) -> list[str]:
    """Return the names in ``required`` that are absent or empty in ``arguments``."""

    args = arguments if isinstance(arguments, Mapping) else {}
    return [name for name in required if _is_missing(args.get(name))]


def ensure_tool_arguments(
    tool_name: str,
    required: Sequence[str],
    arguments: Mapping[str, Any] | None,
) -> None:
    missing = missing_tool_arguments(required, arguments)
    if missing:
        raise MissingToolArgumentsError(tool_name, missing)
