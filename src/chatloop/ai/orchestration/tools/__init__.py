"""Tool system for the generation loop.

Example:
    from chatloop.ai.orchestration.tools import SimpleTool, ToolRegistry, ToolSpec

    registry = ToolRegistry()
    registry.register_function(
        spec=ToolSpec(name="greet", description="Greet someone"),
        handler=lambda args: f"Hello, {args.get('name', 'World')}!",
    )
"""

from .types import (
    Tool,
    ToolSpec,
    ToolHandler,
    AsyncToolHandler,
    PromptBuilder,
    SimpleTool,
    format_tool_result_content,
    to_text_parts,
)

from .registry import (
    ToolRegistry,
    DuplicateToolError,
    ToolNotFoundError,
)

from .executor import (
    ToolCallExecutor,
    ExecutorConfig,
    parse_tool_arguments,
)

__all__ = [
    # types.py
    "Tool",
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "PromptBuilder",
    "SimpleTool",
    "format_tool_result_content",
    "to_text_parts",
    # registry.py
    "ToolRegistry",
    "DuplicateToolError",
    "ToolNotFoundError",
    # executor.py
    "ToolCallExecutor",
    "ExecutorConfig",
    "parse_tool_arguments",
]
