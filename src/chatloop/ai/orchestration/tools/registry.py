"""Per-step tool registry.

The orchestrator assembles a fresh registry at every step from the built-in
memory tools followed by the caller's tools.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Sequence

from ..errors import ToolNotFoundError
from .types import Tool, ToolSpec, SimpleTool, ToolHandler, AsyncToolHandler

__all__ = [
    "ToolRegistry",
    "DuplicateToolError",
    "ToolNotFoundError",
]

LOGGER = logging.getLogger(__name__)


class DuplicateToolError(Exception):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolRegistry:
    """Ordered registry for tool lookup by name.

    Example:
        registry = ToolRegistry.from_tools([*memory_tools, *caller_tools])
        tool = registry.get("create_memory")
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    @classmethod
    def from_tools(cls, tools: Iterable[Tool]) -> ToolRegistry:
        """Build a registry where the first tool of a given name wins.

        Later duplicates are skipped with a warning instead of raising.
        """
        registry = cls()
        for tool in tools:
            if tool.name in registry:
                LOGGER.warning("Ignoring duplicate tool definition: %s", tool.name)
                continue
            registry.register(tool)
        return registry

    def register(self, tool: Tool, *, allow_override: bool = False) -> Tool:
        """Register a tool implementation.

        Raises:
            DuplicateToolError: If the name is taken and ``allow_override`` is False.
        """
        name = tool.name
        if name in self._tools and not allow_override:
            raise DuplicateToolError(name)
        self._tools[name] = tool
        LOGGER.debug("Registered tool: %s", name)
        return tool

    def register_function(
        self,
        spec: ToolSpec,
        handler: ToolHandler | AsyncToolHandler,
        *,
        allow_override: bool = False,
    ) -> Tool:
        """Register a plain function as a tool."""
        return self.register(SimpleTool(spec=spec, handler=handler), allow_override=allow_override)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_required(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If no tool has that name.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def get_openai_tools(
        self,
        *,
        filter_names: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI format."""
        return [
            tool.spec.to_openai_tool()
            for tool in self._tools.values()
            if filter_names is None or tool.name in filter_names
        ]

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
