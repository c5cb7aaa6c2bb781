"""Tool contract types for the generation loop.

A tool exposes a name, an approval requirement, a system-prompt fragment and
an execute operation returning text parts.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Coroutine,
    Mapping,
    Protocol,
    Sequence,
    runtime_checkable,
)

from ..types import Message, TextPart

if TYPE_CHECKING:
    from ...settings import Model

__all__ = [
    "ToolSpec",
    "ToolHandler",
    "AsyncToolHandler",
    "PromptBuilder",
    "Tool",
    "SimpleTool",
    "format_tool_result_content",
    "to_text_parts",
]


# -----------------------------------------------------------------------------
# Tool Specification
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Specification for a tool's interface.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description of what the tool does.
        parameters: JSON Schema for the tool's parameters.
        needs_approval: Whether each call waits for a human decision.
        prompt: Static system-prompt fragment, empty for none.
    """

    name: str
    description: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    needs_approval: bool = False
    prompt: str = ""

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters) if self.parameters else {
                    "type": "object",
                    "properties": {},
                },
            },
        }


# -----------------------------------------------------------------------------
# Handler Types
# -----------------------------------------------------------------------------

ToolHandler = Callable[[Mapping[str, Any]], Any]

AsyncToolHandler = Callable[[Mapping[str, Any]], Coroutine[Any, Any, Any]]

# Builds the system-prompt fragment from the model and the current history.
PromptBuilder = Callable[["Model", Sequence[Message]], str]


# -----------------------------------------------------------------------------
# Tool Protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class Tool(Protocol):
    """Protocol for tool implementations."""

    @property
    def name(self) -> str:
        ...

    @property
    def spec(self) -> ToolSpec:
        ...

    @property
    def needs_approval(self) -> bool:
        ...

    def system_prompt(self, model: Model, messages: Sequence[Message]) -> str:
        """Return the fragment appended to the system prompt, or ``""``."""
        ...

    async def execute(self, arguments: Mapping[str, Any]) -> list[TextPart]:
        """Execute the tool with parsed arguments.

        Raises:
            Exception: If tool execution fails.
        """
        ...


# -----------------------------------------------------------------------------
# Result Formatting
# -----------------------------------------------------------------------------


def format_tool_result_content(result: Any) -> str:
    """Format a raw tool result as text for the model."""
    if result is None:
        return "null"

    if isinstance(result, str):
        return result

    if isinstance(result, bool):
        return "true" if result else "false"

    if isinstance(result, (int, float)):
        return str(result)

    if isinstance(result, (dict, list)):
        try:
            return json.dumps(result, ensure_ascii=False)
        except (TypeError, ValueError):
            return str(result)

    if hasattr(result, "to_dict") and callable(result.to_dict):
        try:
            return json.dumps(result.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError):
            pass

    return str(result)


def to_text_parts(result: Any) -> list[TextPart]:
    """Normalize whatever a handler returned into a list of text parts."""
    if isinstance(result, TextPart):
        return [result]
    if isinstance(result, (list, tuple)) and result and all(isinstance(item, TextPart) for item in result):
        return list(result)
    return [TextPart(format_tool_result_content(result))]


# -----------------------------------------------------------------------------
# Simple Tool Implementation
# -----------------------------------------------------------------------------


@dataclass
class SimpleTool:
    """Tool wrapping a plain callable.

    Synchronous handlers run in a worker thread so a slow tool never blocks
    the event loop.

    Example:
        tool = SimpleTool(
            spec=ToolSpec(name="greet", description="Greet someone"),
            handler=lambda args: f"Hello, {args.get('name', 'World')}!",
        )
    """

    spec: ToolSpec
    handler: ToolHandler | AsyncToolHandler
    prompt_builder: PromptBuilder | None = None
    _is_async: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        self._is_async = inspect.iscoroutinefunction(self.handler)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def needs_approval(self) -> bool:
        return self.spec.needs_approval

    def system_prompt(self, model: Model, messages: Sequence[Message]) -> str:
        if self.prompt_builder is not None:
            return self.prompt_builder(model, messages)
        return self.spec.prompt

    async def execute(self, arguments: Mapping[str, Any]) -> list[TextPart]:
        if self._is_async:
            result = await self.handler(arguments)  # type: ignore[misc]
        else:
            result = await asyncio.to_thread(self.handler, arguments)
        return to_text_parts(result)
