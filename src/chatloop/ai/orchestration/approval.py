"""Approval state machine for tool calls.

``Auto -> Pending`` happens here when a tool requires approval. ``Pending ->
Approved | Denied`` is driven by an external actor through :func:`approve`
and :func:`deny`, after which the orchestrator resumes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .errors import ApprovalError
from .messages import replace_last, replace_tool_calls
from .tools.registry import ToolRegistry
from .types import (
    APPROVED,
    PENDING,
    ApprovalState,
    Approved,
    Auto,
    Denied,
    Message,
    Pending,
    ToolCallPart,
)

__all__ = [
    "GateResult",
    "is_executable",
    "is_resolved",
    "resolved_calls",
    "pending_calls",
    "gate",
    "approve",
    "deny",
]


@dataclass(slots=True, frozen=True)
class GateResult:
    """Outcome of approval gating.

    Attributes:
        calls: The calls after the ``Auto -> Pending`` transition.
        suspended: True when at least one call waits for a human decision.
    """

    calls: tuple[ToolCallPart, ...]
    suspended: bool


def is_executable(state: ApprovalState) -> bool:
    """Return True for states that run the tool (``Auto`` and ``Approved``)."""
    if isinstance(state, (Auto, Approved)):
        return True
    if isinstance(state, (Pending, Denied)):
        return False
    raise TypeError(f"Unknown approval state: {state!r}")


def is_resolved(state: ApprovalState) -> bool:
    """Return True once a human has decided (``Approved`` or ``Denied``)."""
    if isinstance(state, (Approved, Denied)):
        return True
    if isinstance(state, (Auto, Pending)):
        return False
    raise TypeError(f"Unknown approval state: {state!r}")


def resolved_calls(message: Message) -> tuple[ToolCallPart, ...]:
    """Unexecuted calls a human already approved or denied."""
    return tuple(call for call in message.unexecuted_tool_calls() if is_resolved(call.approval))


def pending_calls(message: Message) -> tuple[ToolCallPart, ...]:
    """Unexecuted calls still waiting for a decision."""
    return tuple(call for call in message.unexecuted_tool_calls() if isinstance(call.approval, Pending))


def gate(calls: Sequence[ToolCallPart], tools: ToolRegistry) -> GateResult:
    """Move ``Auto`` calls of approval-requiring tools to ``Pending``.

    Calls naming an unknown tool stay ``Auto``; execution reports the missing
    tool. Pure: the input calls are not modified.
    """
    gated: list[ToolCallPart] = []
    suspended = False
    for call in calls:
        if isinstance(call.approval, Auto):
            tool = tools.get(call.tool_name)
            if tool is not None and tool.needs_approval:
                call = call.with_approval(PENDING)
        elif not isinstance(call.approval, (Pending, Approved, Denied)):
            raise TypeError(f"Unknown approval state: {call.approval!r}")
        if isinstance(call.approval, Pending):
            suspended = True
        gated.append(call)
    return GateResult(calls=tuple(gated), suspended=suspended)


def approve(messages: Sequence[Message], call_id: str) -> tuple[Message, ...]:
    """Approve a pending call in the last message.

    Raises:
        ApprovalError: If the call is missing, executed or not pending.
    """
    return _resolve(messages, call_id, APPROVED)


def deny(messages: Sequence[Message], call_id: str, reason: str = "") -> tuple[Message, ...]:
    """Deny a pending call in the last message, with an optional reason.

    Raises:
        ApprovalError: If the call is missing, executed or not pending.
    """
    return _resolve(messages, call_id, Denied(reason))


def _resolve(messages: Sequence[Message], call_id: str, state: ApprovalState) -> tuple[Message, ...]:
    if not messages:
        raise ApprovalError(call_id, "Conversation is empty")
    last = messages[-1]
    # An id may repeat once its earlier call was executed; the open one wins.
    matches = sorted(
        (call for call in last.tool_calls() if call.call_id == call_id),
        key=lambda call: call.executed,
    )
    if not matches:
        raise ApprovalError(call_id, f"Tool call {call_id} not found in the last message")
    call = matches[0]
    if call.executed:
        raise ApprovalError(call_id, f"Tool call {call_id} was already executed")
    if not isinstance(call.approval, Pending):
        raise ApprovalError(
            call_id,
            f"Tool call {call_id} is not pending (state: {type(call.approval).__name__})",
        )
    return replace_last(messages, replace_tool_calls(last, [call.with_approval(state)]))
