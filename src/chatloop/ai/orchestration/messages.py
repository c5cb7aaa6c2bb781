"""Copy-on-write helpers over the conversation message list.

Every function here takes a sequence of :class:`Message` and returns a new
tuple. Callers keep the previous tuple for emission; nothing is edited in
place.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Sequence

from .provider import ProviderChunk, ToolCallDelta
from .types import Message, MessageRole, Part, TextPart, ToolCallPart, Usage

__all__ = [
    "merge_usage",
    "round_start",
    "synthesized_call_id",
    "apply_chunk",
    "replace_last",
    "replace_tool_calls",
    "mark_finished",
    "truncate",
    "limit_context",
]

LOGGER = logging.getLogger(__name__)


def merge_usage(current: Usage | None, incoming: Usage | None) -> Usage | None:
    """Add two usage counters, either of which may be missing."""
    if current is None:
        return incoming
    return current.merge(incoming)


def replace_last(messages: Sequence[Message], message: Message) -> tuple[Message, ...]:
    """Return ``messages`` with the last element swapped for ``message``."""
    if not messages:
        raise ValueError("Cannot replace the last message of an empty conversation")
    return tuple(messages[:-1]) + (message,)


# -----------------------------------------------------------------------------
# Chunk Merging
# -----------------------------------------------------------------------------


def round_start(messages: Sequence[Message]) -> int:
    """Number of parts the conversation's trailing assistant message holds.

    Pass the value taken before a provider round to :func:`apply_chunk` so
    the round's tool-call deltas never touch calls from earlier steps.
    """
    if messages and messages[-1].role is MessageRole.ASSISTANT:
        return len(messages[-1].parts)
    return 0


def synthesized_call_id(name: str, index: int) -> str:
    """Generate a unique id for a tool call the provider sent without one."""
    return f"generated_{name or 'tool'}_{index}_{uuid.uuid4().hex[:8]}"


def apply_chunk(
    messages: Sequence[Message],
    chunk: ProviderChunk,
    *,
    start: int = 0,
) -> tuple[Message, ...]:
    """Merge one provider chunk into the conversation.

    If the last message is not an assistant message a new one is appended.
    Text extends the trailing text part; tool-call deltas create or extend a
    :class:`ToolCallPart`; usage is added to the last message's counters.

    Tool-call deltas only match unexecuted calls at or after ``start``, the
    calls opened by the current round. Within those, a delta with an id
    extends the call carrying that id and a delta without one extends the
    call at its ``index``. Anything else opens a new call, with a generated
    id when the provider sent none.

    Args:
        messages: Current conversation.
        chunk: Provider output to merge.
        start: :func:`round_start` of the conversation when the round began.

    Returns:
        A new conversation tuple.
    """
    messages = tuple(messages)
    if messages and messages[-1].role is MessageRole.ASSISTANT:
        target = messages[-1]
        base = messages[:-1]
    else:
        target = Message(role=MessageRole.ASSISTANT)
        base = messages
        start = 0

    parts = list(target.parts)
    if chunk.content:
        _append_text(parts, chunk.content)
    for delta in chunk.tool_calls:
        _apply_tool_delta(parts, delta, start)

    updated = replace(
        target,
        parts=tuple(parts),
        usage=merge_usage(target.usage, chunk.usage),
    )
    return base + (updated,)


def _append_text(parts: list[Part], text: str) -> None:
    if parts and isinstance(parts[-1], TextPart):
        parts[-1] = TextPart(parts[-1].text + text)
    else:
        parts.append(TextPart(text))


def _apply_tool_delta(parts: list[Part], delta: ToolCallDelta, start: int) -> None:
    open_calls = [
        position
        for position in range(min(start, len(parts)), len(parts))
        if isinstance(parts[position], ToolCallPart) and not parts[position].executed  # type: ignore[union-attr]
    ]
    position = _match_open_call(parts, open_calls, delta)
    if position is not None:
        parts[position] = _extend_call(parts[position], delta)  # type: ignore[arg-type]
        return
    if not delta.call_id and not delta.name:
        LOGGER.warning("Dropping tool-call delta without an open call (index=%d)", delta.index)
        return
    parts.append(
        ToolCallPart(
            call_id=delta.call_id or synthesized_call_id(delta.name, delta.index),
            tool_name=delta.name,
            input=delta.arguments,
        )
    )


def _match_open_call(parts: list[Part], open_calls: list[int], delta: ToolCallDelta) -> int | None:
    if delta.call_id:
        for position in open_calls:
            if parts[position].call_id == delta.call_id:  # type: ignore[union-attr]
                return position
        return None
    if 0 <= delta.index < len(open_calls):
        return open_calls[delta.index]
    # Continuations of a call opened under an unexpected index.
    if open_calls and not delta.name:
        return open_calls[-1]
    return None


def _extend_call(part: ToolCallPart, delta: ToolCallDelta) -> ToolCallPart:
    return replace(
        part,
        tool_name=part.tool_name or delta.name,
        input=part.input + delta.arguments,
    )


# -----------------------------------------------------------------------------
# Tool Part Replacement
# -----------------------------------------------------------------------------


def replace_tool_calls(message: Message, calls: Iterable[ToolCallPart]) -> Message:
    """Swap unexecuted tool-call parts by ``call_id``, keeping every position.

    Executed calls are final and never replaced, so a later call reusing the
    id of an executed one is the only match. Parts without a replacement are
    left untouched; replacing a call with itself returns an equal message.
    """
    by_id = {call.call_id: call for call in calls}
    if not by_id:
        return message
    parts = tuple(
        by_id.get(part.call_id, part) if isinstance(part, ToolCallPart) and not part.executed else part
        for part in message.parts
    )
    if parts == message.parts:
        return message
    return replace(message, parts=parts)


def mark_finished(messages: Sequence[Message], when: datetime | None = None) -> tuple[Message, ...]:
    """Stamp the completion time on the last message."""
    if not messages:
        return tuple(messages)
    stamp = when or datetime.now(timezone.utc)
    return replace_last(messages, replace(messages[-1], finished_at=stamp))


# -----------------------------------------------------------------------------
# History Windowing
# -----------------------------------------------------------------------------


def truncate(messages: Sequence[Message], index: int) -> tuple[Message, ...]:
    """Drop everything before ``index``.

    An index outside ``[0, len(messages)]`` leaves the history unchanged; the
    default ``-1`` therefore means "no truncation".
    """
    if index < 0 or index > len(messages):
        return tuple(messages)
    return tuple(messages[index:])


def limit_context(messages: Sequence[Message], size: int) -> tuple[Message, ...]:
    """Keep at most the last ``size`` messages (``size <= 0`` keeps all).

    Leading tool-result carriers are dropped so the window never starts with
    a result whose call fell outside of it.
    """
    if size <= 0 or len(messages) <= size:
        return tuple(messages)
    window = list(messages[-size:])
    while window and window[0].role is MessageRole.TOOL:
        window.pop(0)
    return tuple(window)
