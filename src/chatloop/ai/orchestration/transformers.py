"""Message transformers applied around a generation round.

Input transformers rewrite the request history before it reaches the
provider. Output transformers rewrite the conversation as it is emitted:

- ``transform`` runs on every emission and its result is kept.
- ``visual_transform`` runs once the round is complete.
- ``on_generation_finish`` runs last, before the completion stamp.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from .types import Message, MessageRole, TextPart

if TYPE_CHECKING:
    from ..settings import Assistant, Model

__all__ = [
    "TransformerContext",
    "InputMessageTransformer",
    "OutputMessageTransformer",
    "apply_input",
    "apply_transforms",
    "apply_visual_transforms",
    "apply_generation_finish",
    "SandboxContextFileTransformer",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TransformerContext:
    """What a transformer may know about the running generation."""

    model: Model
    assistant: Assistant
    conversation_id: str = ""


class InputMessageTransformer:
    """Rewrites the request history. The default is the identity."""

    async def transform(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        return messages


class OutputMessageTransformer:
    """Rewrites emitted conversations. Every hook defaults to the identity."""

    async def transform(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        return messages

    async def visual_transform(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        return messages

    async def on_generation_finish(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        return messages


# -----------------------------------------------------------------------------
# Chaining
# -----------------------------------------------------------------------------


async def apply_input(
    transformers: Sequence[InputMessageTransformer],
    ctx: TransformerContext,
    messages: Sequence[Message],
) -> tuple[Message, ...]:
    for transformer in transformers:
        messages = await transformer.transform(ctx, messages)
    return tuple(messages)


async def apply_transforms(
    transformers: Sequence[OutputMessageTransformer],
    ctx: TransformerContext,
    messages: Sequence[Message],
) -> tuple[Message, ...]:
    for transformer in transformers:
        messages = await transformer.transform(ctx, messages)
    return tuple(messages)


async def apply_visual_transforms(
    transformers: Sequence[OutputMessageTransformer],
    ctx: TransformerContext,
    messages: Sequence[Message],
) -> tuple[Message, ...]:
    for transformer in transformers:
        messages = await transformer.visual_transform(ctx, messages)
    return tuple(messages)


async def apply_generation_finish(
    transformers: Sequence[OutputMessageTransformer],
    ctx: TransformerContext,
    messages: Sequence[Message],
) -> tuple[Message, ...]:
    for transformer in transformers:
        messages = await transformer.on_generation_finish(ctx, messages)
    return tuple(messages)


# -----------------------------------------------------------------------------
# Sandbox Context File
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class _CachedContent:
    content: str
    mtime_ns: int


class SandboxContextFileTransformer(InputMessageTransformer):
    """Injects the conversation's ``chatloop.md`` after the system prompt.

    The file lives at ``<sandbox_root>/<conversation_id>/chatloop.md``. It
    gives the model persistent project context without repeating it in the
    history. Content is cached per conversation and reread when the file's
    modification time changes.

    Args:
        sandbox_root: Directory holding one sandbox per conversation.
        max_entries: Number of conversations kept in the cache.
    """

    CONTEXT_FILE_NAME = "chatloop.md"
    MAX_FILE_SIZE = 50 * 1024
    HEADER = f"--- Sandbox Context ({CONTEXT_FILE_NAME}) ---"

    def __init__(self, sandbox_root: Path | str, *, max_entries: int = 50) -> None:
        self._root = Path(sandbox_root)
        self._max_entries = max(1, max_entries)
        self._cache: OrderedDict[str, _CachedContent] = OrderedDict()
        self._lock = threading.RLock()

    def sandbox_dir(self, conversation_id: str) -> Path:
        return self._root / conversation_id

    async def transform(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        if not ctx.conversation_id:
            return messages
        content = await asyncio.to_thread(self._read_context_file, ctx.conversation_id)
        if content is None or not content.strip():
            return messages
        return self._inject_after_system_prompt(messages, content)

    def clear_cache(self, conversation_id: str | None = None) -> None:
        """Forget one conversation's cached file, or every cached file."""
        with self._lock:
            if conversation_id is None:
                self._cache.clear()
            else:
                self._cache.pop(conversation_id, None)

    def _read_context_file(self, conversation_id: str) -> str | None:
        path = self.sandbox_dir(conversation_id) / self.CONTEXT_FILE_NAME
        try:
            mtime_ns = path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
        except OSError:
            LOGGER.warning("Cannot stat context file: %s", path, exc_info=True)
            return None

        with self._lock:
            cached = self._cache.get(conversation_id)
            if cached is not None and cached.mtime_ns == mtime_ns:
                self._cache.move_to_end(conversation_id)
                LOGGER.debug("Using cached context file for conversation: %s", conversation_id)
                return cached.content

        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            LOGGER.warning("Failed to read context file for conversation: %s", conversation_id, exc_info=True)
            return None

        if len(raw) > self.MAX_FILE_SIZE:
            LOGGER.warning("Context file exceeds %dKB, truncating", self.MAX_FILE_SIZE // 1024)
            content = (
                raw[: self.MAX_FILE_SIZE]
                + f"\n\n[Context file truncated: exceeded {self.MAX_FILE_SIZE // 1024}KB limit]"
            )
        else:
            content = raw

        with self._lock:
            self._cache[conversation_id] = _CachedContent(content=content, mtime_ns=mtime_ns)
            self._cache.move_to_end(conversation_id)
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)

        LOGGER.debug("Loaded context file for conversation: %s (%d chars)", conversation_id, len(content))
        return content

    def _inject_after_system_prompt(self, messages: Sequence[Message], content: str) -> tuple[Message, ...]:
        result = list(messages)
        for index, message in enumerate(result):
            if message.role is MessageRole.SYSTEM:
                text = f"{message.text()}\n\n{self.HEADER}\n{content}"
                result[index] = replace(message, parts=(TextPart(text),))
                return tuple(result)
        result.insert(0, Message.system(f"{self.HEADER}\n{content}"))
        return tuple(result)
