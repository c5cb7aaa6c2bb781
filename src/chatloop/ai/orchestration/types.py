"""Core type definitions for the generation loop.

This module defines the immutable dataclasses that flow through the
orchestrator. All types are frozen: a message is never edited in place, it is
replaced by a new instance (see :mod:`chatloop.ai.orchestration.messages`).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union

__all__ = [
    # Roles and phases
    "MessageRole",
    "WorkflowPhase",
    # Approval variants
    "ApprovalState",
    "Auto",
    "Pending",
    "Approved",
    "Denied",
    "AUTO",
    "PENDING",
    "APPROVED",
    # Parts
    "TextPart",
    "ToolCallPart",
    "Part",
    # Messages
    "Usage",
    "Message",
    "GenerationChunk",
]


# -----------------------------------------------------------------------------
# Helper
# -----------------------------------------------------------------------------


def _utcnow() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# -----------------------------------------------------------------------------
# Enumerations
# -----------------------------------------------------------------------------


class MessageRole(str, Enum):
    """Role of a conversation message. ``TOOL`` carries tool results."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class WorkflowPhase(str, Enum):
    """Coarse operating mode restricting which tool operations may run."""

    PLAN = "plan"
    EXECUTE = "execute"
    REVIEW = "review"


# -----------------------------------------------------------------------------
# Approval State
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Auto:
    """Initial state: the call runs without human approval."""


@dataclass(slots=True, frozen=True)
class Pending:
    """Waiting for an external actor to approve or deny the call."""


@dataclass(slots=True, frozen=True)
class Approved:
    """Approved by an external actor; ready to execute."""


@dataclass(slots=True, frozen=True)
class Denied:
    """Denied by an external actor; never executed.

    Attributes:
        reason: Free-form explanation supplied by the human, may be blank.
    """

    reason: str = ""


ApprovalState = Union[Auto, Pending, Approved, Denied]

AUTO = Auto()
PENDING = Pending()
APPROVED = Approved()


# -----------------------------------------------------------------------------
# Message Parts
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TextPart:
    """Plain text content."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True, frozen=True)
class ToolCallPart:
    """A tool invocation requested by the model.

    A call is *executed* exactly when ``output`` is set, so an executed call
    always carries output and a pending one never does.

    Attributes:
        call_id: Provider-assigned identifier of the call.
        tool_name: Name of the requested tool.
        input: Raw JSON arguments as streamed by the model.
        approval: Current approval state.
        output: Result parts once executed, otherwise ``None``.
    """

    call_id: str
    tool_name: str
    input: str = ""
    approval: ApprovalState = AUTO
    output: tuple[TextPart, ...] | None = None

    def __post_init__(self) -> None:
        if self.output is not None and not isinstance(self.output, tuple):
            object.__setattr__(self, "output", tuple(self.output))

    @property
    def executed(self) -> bool:
        return self.output is not None

    def with_approval(self, approval: ApprovalState) -> ToolCallPart:
        return replace(self, approval=approval)

    def with_output(self, output: tuple[TextPart, ...] | list[TextPart]) -> ToolCallPart:
        return replace(self, output=tuple(output))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "tool_call",
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "input": self.input,
            "approval": type(self.approval).__name__.lower(),
        }
        if isinstance(self.approval, Denied):
            payload["denial_reason"] = self.approval.reason
        if self.output is not None:
            payload["output"] = [part.to_dict() for part in self.output]
        return payload


Part = Union[TextPart, ToolCallPart]


# -----------------------------------------------------------------------------
# Usage
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Usage:
    """Token counters reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cached_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def merge(self, other: Usage | None) -> Usage:
        """Return the field-wise sum of both counters."""
        if other is None:
            return self
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            cached_tokens=self.cached_tokens + other.cached_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "cached_tokens": self.cached_tokens,
        }


# -----------------------------------------------------------------------------
# Message Type
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable conversation message made of typed parts.

    Attributes:
        role: The role of the message sender.
        parts: Ordered text and tool-call parts.
        usage: Accumulated token usage for assistant messages.
        finished_at: Completion timestamp of the generation round.
        id: Stable identifier of the message.
        created_at: Creation time.
        metadata: Additional metadata (not sent to the model).
    """

    role: MessageRole
    parts: tuple[Part, ...] = ()
    usage: Usage | None = None
    finished_at: datetime | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))

    @classmethod
    def system(cls, text: str, **metadata: Any) -> Message:
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, parts=(TextPart(text),), metadata=metadata)

    @classmethod
    def user(cls, text: str, **metadata: Any) -> Message:
        """Create a user message."""
        return cls(role=MessageRole.USER, parts=(TextPart(text),), metadata=metadata)

    @classmethod
    def assistant(cls, *parts: Part, **metadata: Any) -> Message:
        """Create an assistant message from parts."""
        return cls(role=MessageRole.ASSISTANT, parts=tuple(parts), metadata=metadata)

    def text(self) -> str:
        """Concatenate every text part."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_calls(self) -> tuple[ToolCallPart, ...]:
        return tuple(part for part in self.parts if isinstance(part, ToolCallPart))

    def unexecuted_tool_calls(self) -> tuple[ToolCallPart, ...]:
        return tuple(part for part in self.tool_calls() if not part.executed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "parts": [part.to_dict() for part in self.parts],
            "usage": self.usage.to_dict() if self.usage else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# -----------------------------------------------------------------------------
# Emitted Snapshot
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class GenerationChunk:
    """Snapshot of the whole conversation emitted by the orchestrator."""

    messages: tuple[Message, ...]

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))

    @property
    def last_message(self) -> Message | None:
        return self.messages[-1] if self.messages else None
