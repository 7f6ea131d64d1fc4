"""Tool system for the agent loop.

Example:
    from agentstream.ai.orchestration.tools import ToolExecutor, ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="greet", description="Greet someone"),
        handler=lambda args: f"Hello, {args.get('name', 'World')}!",
    )
    executor = ToolExecutor(registry)
    result = await executor.execute("greet", {"name": "Alice"})
"""

from .types import (
    AsyncToolHandler,
    SimpleTool,
    Tool,
    ToolHandler,
    ToolSpec,
)

from .registry import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistration,
    ToolRegistry,
)

from .executor import (
    ExecutorConfig,
    ToolExecutionError,
    ToolExecutor,
    ToolOutcome,
)

from .preferences import enabled_tool_names, normalize_tool_preferences
from .validation import MissingToolArgumentsError, ensure_tool_arguments, missing_tool_arguments

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "SimpleTool",
    # registry.py
    "ToolRegistry",
    "ToolRegistration",
    "DuplicateToolError",
    "ToolNotFoundError",
    # executor.py
    "ToolExecutor",
    "ExecutorConfig",
    "ToolExecutionError",
    "ToolOutcome",
    # preferences.py
    "normalize_tool_preferences",
    "enabled_tool_names",
    # validation.py
    "MissingToolArgumentsError",
    "ensure_tool_arguments",
    "missing_tool_arguments",
]
