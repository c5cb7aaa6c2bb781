"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Callable, Mapping, Sequence

from chatloop.ai.orchestration.provider import ProviderChunk, TextGenerationParams, ToolCallDelta
from chatloop.ai.orchestration.tools import SimpleTool, ToolSpec
from chatloop.ai.orchestration.types import Message, Usage


def text_chunk(text: str, *, usage: Usage | None = None) -> ProviderChunk:
    return ProviderChunk(content=text, usage=usage, finish_reason="stop")


def tool_chunk(call_id: str, name: str, arguments: Mapping[str, Any] | str = "") -> ProviderChunk:
    """One-shot response requesting a single tool call."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ProviderChunk(
        tool_calls=(ToolCallDelta(index=0, call_id=call_id, name=name, arguments=raw),),
        finish_reason="tool_calls",
    )


class MockProvider:
    """Provider returning scripted responses.

    Each response is either a single ``ProviderChunk`` (used as is for
    ``generate_text`` and as a one-chunk stream) or a list of chunks (streamed
    in order, and merged for ``generate_text``).
    """

    def __init__(self, responses: Sequence[ProviderChunk | Sequence[ProviderChunk]] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    def _next(self, messages: Sequence[Message], params: TextGenerationParams, *, stream: bool) -> list[ProviderChunk]:
        self.calls.append({"messages": list(messages), "params": params, "stream": stream})
        if self.error is not None:
            raise self.error
        if not self.responses:
            return [ProviderChunk(content="Default response", finish_reason="stop")]
        response = self.responses.pop(0)
        if isinstance(response, ProviderChunk):
            return [response]
        return list(response)

    async def generate_text(self, messages: Sequence[Message], params: TextGenerationParams) -> ProviderChunk:
        chunks = self._next(messages, params, stream=False)
        if len(chunks) == 1:
            return chunks[0]
        usage = None
        for chunk in chunks:
            if chunk.usage is not None:
                usage = chunk.usage if usage is None else usage.merge(chunk.usage)
        return ProviderChunk(
            content="".join(chunk.content for chunk in chunks),
            tool_calls=tuple(delta for chunk in chunks for delta in chunk.tool_calls),
            usage=usage,
        )

    async def stream_text(
        self,
        messages: Sequence[Message],
        params: TextGenerationParams,
    ) -> AsyncIterator[ProviderChunk]:
        for chunk in self._next(messages, params, stream=True):
            yield chunk

    @property
    def call_count(self) -> int:
        return len(self.calls)


def make_tool(
    name: str,
    handler: Callable[[Mapping[str, Any]], Any] | None = None,
    *,
    needs_approval: bool = False,
    prompt: str = "",
) -> SimpleTool:
    """Create a tool that records its invocations in ``tool.calls``."""
    calls: list[dict[str, Any]] = []

    def default_handler(arguments: Mapping[str, Any]) -> str:
        return f"{name} ok"

    target = handler or default_handler

    def recording(arguments: Mapping[str, Any]) -> Any:
        calls.append(dict(arguments))
        return target(arguments)

    tool = SimpleTool(
        spec=ToolSpec(name=name, description=f"{name} tool", needs_approval=needs_approval, prompt=prompt),
        handler=recording,
    )
    tool.calls = calls  # type: ignore[attr-defined]
    return tool
