"""Execution of resolved tool calls.

The executor turns an unexecuted :class:`ToolCallPart` into an executed one.
Failures never escape: missing tools, malformed arguments, phase violations
and tool exceptions all become a JSON error output the model can read.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Sequence

from .. import phase_guard
from ..errors import denial_payload, error_payload
from ..types import Approved, Auto, Denied, Pending, TextPart, ToolCallPart, WorkflowPhase
from .registry import ToolRegistry

__all__ = [
    "ExecutorConfig",
    "ToolCallExecutor",
    "parse_tool_arguments",
]

LOGGER = logging.getLogger(__name__)


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Parse tool arguments from a JSON string.

    Raises:
        ValueError: If arguments are not a JSON object.
    """
    if not arguments or arguments.strip() in ("", "{}"):
        return {}

    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in tool arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"Arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for the tool executor.

    Attributes:
        log_arguments: Whether to log tool arguments (may contain sensitive data).
    """

    log_arguments: bool = False


class ToolCallExecutor:
    """Runs resolved tool calls against a step's tool registry.

    Example:
        executor = ToolCallExecutor(registry)
        executed = await executor.run_all(message.unexecuted_tool_calls(), phase=None)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        config: ExecutorConfig | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or ExecutorConfig()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(
        self,
        call: ToolCallPart,
        *,
        phase: WorkflowPhase | None = None,
    ) -> ToolCallPart | None:
        """Execute one call according to its approval state.

        Args:
            call: The unexecuted call.
            phase: Active workflow phase, ``None`` disables phase gating.

        Returns:
            The executed call, or ``None`` when the call is still pending.
        """
        approval = call.approval
        if isinstance(approval, Denied):
            LOGGER.debug("Tool %s (call_id=%s) denied by user", call.tool_name, call.call_id)
            return call.with_output([TextPart(denial_payload(approval.reason))])
        if isinstance(approval, Pending):
            return None
        if isinstance(approval, (Auto, Approved)):
            return call.with_output(await self._execute(call, phase))
        raise TypeError(f"Unknown approval state: {approval!r}")

    async def run_all(
        self,
        calls: Sequence[ToolCallPart],
        *,
        phase: WorkflowPhase | None = None,
    ) -> list[ToolCallPart]:
        """Execute calls one after another in order, skipping pending ones."""
        executed: list[ToolCallPart] = []
        for call in calls:
            if call.executed:
                continue
            result = await self.run(call, phase=phase)
            if result is not None:
                executed.append(result)
        return executed

    async def _execute(self, call: ToolCallPart, phase: WorkflowPhase | None) -> list[TextPart]:
        if self._config.log_arguments:
            LOGGER.debug(
                "Executing tool %s (call_id=%s) with arguments: %s",
                call.tool_name,
                call.call_id,
                call.input,
            )
        else:
            LOGGER.debug("Executing tool %s (call_id=%s)", call.tool_name, call.call_id)

        start_time = time.perf_counter()
        try:
            tool = self._registry.get_required(call.tool_name)
            arguments = parse_tool_arguments(call.input)
            phase_guard.check(phase, call.tool_name, call.input)
            output = await tool.execute(arguments)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            LOGGER.warning(
                "Tool %s failed after %.1fms: %s",
                call.tool_name,
                duration_ms,
                e,
                exc_info=True,
            )
            return [TextPart(error_payload(e))]

        duration_ms = (time.perf_counter() - start_time) * 1000
        LOGGER.debug("Tool %s completed in %.1fms", call.tool_name, duration_ms)
        return list(output)
