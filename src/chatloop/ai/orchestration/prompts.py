"""Request assembly for a generation round."""

from __future__ import annotations

import logging
import textwrap
from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

from ..memory.tools import build_memory_prompt
from . import phase_guard
from .messages import limit_context, truncate
from .transformers import InputMessageTransformer, TransformerContext, apply_input
from .types import Message, WorkflowPhase

if TYPE_CHECKING:
    from ..memory.store import AssistantMemory
    from ..settings import Assistant, Model
    from .tools.types import Tool

__all__ = [
    "ConversationRepository",
    "RECENT_CHATS_LIMIT",
    "build_recent_chats_prompt",
    "build_system_prompt",
    "build_internal_messages",
    "DEFAULT_TRANSLATION_PROMPT",
    "build_translation_prompt",
]

LOGGER = logging.getLogger(__name__)

RECENT_CHATS_LIMIT = 10


@runtime_checkable
class ConversationRepository(Protocol):
    """Read access to past conversations of an assistant."""

    async def recent_conversation_titles(self, assistant_id: str, limit: int) -> Sequence[str]:
        ...


async def build_recent_chats_prompt(
    assistant: Assistant,
    repository: ConversationRepository | None,
    *,
    limit: int = RECENT_CHATS_LIMIT,
) -> str:
    """Render the titles of the assistant's latest conversations."""
    if repository is None:
        return ""
    titles = [title for title in await repository.recent_conversation_titles(assistant.id, limit) if title.strip()]
    if not titles:
        return ""
    listing = "\n".join(f"- {title}" for title in titles)
    header = textwrap.dedent(
        """\
        ## Recent chats
        Titles of the user's most recent conversations with you, newest first.
        Use them only as background; do not mention them unless relevant."""
    )
    return f"{header}\n<recent_chats>\n{listing}\n</recent_chats>"


async def build_system_prompt(
    *,
    model: Model,
    assistant: Assistant,
    messages: Sequence[Message],
    memories: Sequence[AssistantMemory],
    tools: Sequence[Tool],
    workflow_phase: WorkflowPhase | None = None,
    conversation_repo: ConversationRepository | None = None,
) -> str:
    """Compose the system prompt.

    Sections, in order: the assistant's prompt, the memory summary, the
    recent-chats summary, the workflow-phase block, then every tool's
    prompt fragment. Blank sections are skipped.
    """
    sections: list[str] = []
    if assistant.system_prompt.strip():
        sections.append(assistant.system_prompt)
    if assistant.enable_memory:
        sections.append(build_memory_prompt(memories))
    if assistant.enable_recent_chats_reference:
        sections.append(await build_recent_chats_prompt(assistant, conversation_repo))
    if workflow_phase is not None:
        sections.append(phase_guard.phase_prompt(workflow_phase))
    for tool in tools:
        sections.append(tool.system_prompt(model, messages))
    return "\n\n".join(section for section in sections if section.strip())


async def build_internal_messages(
    *,
    system_prompt: str,
    messages: Sequence[Message],
    assistant: Assistant,
    truncate_index: int,
    transformers: Sequence[InputMessageTransformer],
    ctx: TransformerContext,
) -> tuple[Message, ...]:
    """Build the provider request: system prompt, windowed history, input transforms."""
    history = limit_context(truncate(messages, truncate_index), assistant.context_message_size)
    request: tuple[Message, ...] = history
    if system_prompt.strip():
        request = (Message.system(system_prompt),) + history
    LOGGER.debug("Request holds %d of %d messages", len(request), len(messages))
    return await apply_input(transformers, ctx, request)


# -----------------------------------------------------------------------------
# Translation
# -----------------------------------------------------------------------------

DEFAULT_TRANSLATION_PROMPT = textwrap.dedent(
    """\
    You are a translation expert. Translate the text below into {target_lang}.
    Keep the original formatting, including markdown and line breaks.
    Reply with the translation only, without explanations or quotes.

    <source_text>
    {source_text}
    </source_text>"""
)


def build_translation_prompt(
    source_text: str,
    target_language: str,
    template: str = DEFAULT_TRANSLATION_PROMPT,
) -> str:
    """Fill the ``{source_text}`` and ``{target_lang}`` placeholders of ``template``.

    Placeholders are substituted literally and the source text goes in last,
    so braces inside it are never expanded.
    """
    return template.replace("{target_lang}", target_language).replace("{source_text}", source_text)
