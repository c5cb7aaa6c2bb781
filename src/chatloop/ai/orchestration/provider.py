"""Provider contract consumed by the generation loop.

The orchestrator never talks to a model API directly. It drives any object
conforming to :class:`Provider`; :class:`chatloop.ai.client.AIClient` is the
OpenAI-compatible implementation.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence, runtime_checkable

from .types import Message, Usage

if TYPE_CHECKING:
    from ..settings import CustomBody, CustomHeader, Model

__all__ = [
    "ToolCallDelta",
    "ProviderChunk",
    "TextGenerationParams",
    "Provider",
]


@dataclass(slots=True, frozen=True)
class ToolCallDelta:
    """Incremental tool-call content delivered by the provider.

    Attributes:
        index: Position of the call in the provider's tool-call array.
        call_id: Call identifier; empty on continuation deltas.
        name: Tool name; usually only present on the first delta.
        arguments: Fragment of the JSON arguments.
    """

    index: int = 0
    call_id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(slots=True, frozen=True)
class ProviderChunk:
    """One unit of provider output.

    A streaming provider yields many chunks carrying deltas; a one-shot
    provider returns a single chunk carrying the whole response.
    """

    content: str = ""
    tool_calls: tuple[ToolCallDelta, ...] = ()
    usage: Usage | None = None
    finish_reason: str | None = None
    model: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.tool_calls and self.usage is None


@dataclass(slots=True, frozen=True)
class TextGenerationParams:
    """Parameters for one generation request."""

    model: Model
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    tools: tuple[Mapping[str, Any], ...] = ()
    thinking_budget: int | None = None
    custom_headers: tuple[CustomHeader, ...] = ()
    custom_body: tuple[CustomBody, ...] = field(default_factory=tuple)


@runtime_checkable
class Provider(Protocol):
    """Protocol for language-model providers.

    Both operations may raise; the orchestrator lets provider failures
    propagate to its caller.
    """

    async def generate_text(
        self,
        messages: Sequence[Message],
        params: TextGenerationParams,
    ) -> ProviderChunk:
        """Run a single-shot generation and return the whole result."""
        ...

    def stream_text(
        self,
        messages: Sequence[Message],
        params: TextGenerationParams,
    ) -> AsyncIterator[ProviderChunk]:
        """Stream a generation as incremental chunks."""
        ...
