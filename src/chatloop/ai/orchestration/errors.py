"""Exception types raised inside the generation loop."""

from __future__ import annotations

import json
from typing import Any

__all__ = [
    "GenerationError",
    "ToolNotFoundError",
    "PolicyViolationError",
    "ApprovalError",
    "error_payload",
    "denial_payload",
]

NO_REASON_PROVIDED = "No reason provided"


class GenerationError(Exception):
    """Base class for orchestrator errors."""


class ToolNotFoundError(GenerationError):
    """Raised when a call references a tool absent from the step's tool set."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool {name} not found")


class PolicyViolationError(GenerationError):
    """Raised when the active workflow phase forbids a tool operation."""

    def __init__(self, message: str, *, tool_name: str = "", operation: str | None = None) -> None:
        self.tool_name = tool_name
        self.operation = operation
        super().__init__(message)


class ApprovalError(GenerationError):
    """Raised when an approval decision targets a call that cannot take it."""

    def __init__(self, call_id: str, message: str) -> None:
        self.call_id = call_id
        super().__init__(message)


def error_payload(exc: BaseException) -> str:
    """Render an exception as the JSON error text handed back to the model."""
    detail = str(exc) or type(exc).__name__
    return _dump({"error": f"[{type(exc).__name__}] {detail}"})


def denial_payload(reason: str) -> str:
    """Render a human denial as JSON error text."""
    reason = reason if reason and reason.strip() else NO_REASON_PROVIDED
    return _dump({"error": f"Tool execution denied by user. Reason: {reason}"})


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)
