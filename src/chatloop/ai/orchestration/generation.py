"""Multi-step tool-calling generation loop.

Each step asks the model for a response, then acts on the tool calls it
requested:

1. Assemble the step's tools (memory tools first, then the caller's).
2. Resume approved or denied calls left by a previous run, if any.
3. Otherwise run a generation round and emit the merged response.
4. Stop when the response has no unexecuted tool calls.
5. Gate calls needing approval; suspend when any call is pending.
6. Execute the resolved calls in order.
7. Stop when nothing was executed.
8. Replace the executed calls in place and emit.
9. Continue until the step budget is spent.

The conversation is never edited in place. Every emitted
:class:`GenerationChunk` holds a complete, consistent snapshot.
"""

from __future__ import annotations

import logging
import re
import uuid
from contextlib import aclosing
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Sequence

from ..memory.store import GLOBAL_MEMORY_ID, AssistantMemory, MemoryStore
from ..memory.tools import build_memory_tools
from ..settings import CustomBody
from .approval import gate, pending_calls, resolved_calls
from .event_log import GenerationEventLogger
from .messages import apply_chunk, mark_finished, replace_last, replace_tool_calls, round_start
from .prompts import (
    DEFAULT_TRANSLATION_PROMPT,
    ConversationRepository,
    build_internal_messages,
    build_system_prompt,
    build_translation_prompt,
)
from .provider import Provider, ProviderChunk, TextGenerationParams
from .tools.executor import ExecutorConfig, ToolCallExecutor
from .tools.registry import ToolRegistry
from .transformers import (
    InputMessageTransformer,
    OutputMessageTransformer,
    TransformerContext,
    apply_generation_finish,
    apply_transforms,
    apply_visual_transforms,
)
from .types import GenerationChunk, Message, MessageRole, WorkflowPhase

if TYPE_CHECKING:
    from ..settings import Assistant, Model
    from .event_log import GenerationEventLogRun, _NullGenerationEventLogRun
    from .tools.types import Tool

__all__ = [
    "GenerationConfig",
    "GenerationHandler",
    "memory_scope",
    "TRANSLATION_MODEL_PATTERN",
]

LOGGER = logging.getLogger(__name__)

# Models that translate natively and take `translation_options` instead of a prompt.
TRANSLATION_MODEL_PATTERN = re.compile(r"qwen-mt", re.IGNORECASE)
TRANSLATION_TEMPERATURE = 0.3


@dataclass(slots=True, frozen=True)
class GenerationConfig:
    """Configuration for the generation loop.

    Attributes:
        max_steps: Default step budget of one ``generate_text`` call.
        log_arguments: Whether to log tool arguments (may contain sensitive data).
    """

    max_steps: int = 256
    log_arguments: bool = False


def memory_scope(assistant: Assistant) -> str:
    """Scope under which the assistant reads and writes memories."""
    return GLOBAL_MEMORY_ID if assistant.use_global_memory else str(assistant.id)


class GenerationHandler:
    """Drives a provider through the multi-step tool-calling loop.

    Example:
        handler = GenerationHandler(provider, memory_store=store)
        async for chunk in handler.generate_text(
            model=model,
            messages=history,
            assistant=assistant,
            tools=[search_tool],
        ):
            render(chunk.messages)
    """

    def __init__(
        self,
        provider: Provider,
        *,
        memory_store: MemoryStore | None = None,
        conversation_repo: ConversationRepository | None = None,
        config: GenerationConfig | None = None,
        event_logger: GenerationEventLogger | None = None,
    ) -> None:
        self._provider = provider
        self._memory_store = memory_store
        self._conversation_repo = conversation_repo
        self._config = config or GenerationConfig()
        self._event_logger = event_logger or GenerationEventLogger(enabled=False)

    @property
    def config(self) -> GenerationConfig:
        return self._config

    async def generate_text(
        self,
        *,
        model: Model,
        messages: Sequence[Message],
        assistant: Assistant,
        memories: Sequence[AssistantMemory] | None = None,
        tools: Sequence[Tool] = (),
        input_transformers: Sequence[InputMessageTransformer] = (),
        output_transformers: Sequence[OutputMessageTransformer] = (),
        truncate_index: int = -1,
        max_steps: int | None = None,
        workflow_phase: WorkflowPhase | None = None,
        conversation_id: str = "",
    ) -> AsyncIterator[GenerationChunk]:
        """Run the loop and yield a snapshot at every observable milestone.

        Args:
            model: Model to generate with.
            messages: Conversation so far. Its last message may hold approved
                or denied tool calls from a suspended run.
            assistant: Assistant settings.
            memories: Memories for the system prompt; loaded from the memory
                store when omitted.
            tools: Caller tools, after the built-in memory tools.
            input_transformers: Rewrite the provider request.
            output_transformers: Rewrite emitted conversations.
            truncate_index: Drop history before this index (-1 keeps all).
            max_steps: Step budget, defaults to ``GenerationConfig.max_steps``.
            workflow_phase: Active phase, ``None`` disables phase gating.
            conversation_id: Identifier handed to transformers.

        Yields:
            Snapshots of the whole conversation.

        Raises:
            ValueError: If ``max_steps`` is below 1.
            Exception: Provider failures propagate unchanged.
        """
        steps = self._config.max_steps if max_steps is None else max_steps
        if steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {steps}")

        ctx = TransformerContext(model=model, assistant=assistant, conversation_id=conversation_id)
        history: tuple[Message, ...] = tuple(messages)
        memory_list = await self._resolve_memories(assistant, memories)

        log_run = self._event_logger.start_run(
            run_id=uuid.uuid4().hex,
            model_id=model.model_id,
            assistant_id=str(assistant.id),
            conversation_id=conversation_id,
            workflow_phase=workflow_phase.value if workflow_phase is not None else None,
            max_steps=steps,
        )
        with log_run:
            reason = "max_steps"
            step = 0
            for step in range(steps):
                LOGGER.info("Starting step #%d (%s)", step, model.model_id)
                registry = self._build_registry(assistant, tools)
                last = history[-1] if history else None
                resumable = resolved_calls(last) if last is not None else ()

                if not resumable:
                    waiting = pending_calls(last) if last is not None else ()
                    if waiting:
                        LOGGER.info("Tool calls still waiting for approval: %d", len(waiting))
                        log_run.log_suspended(step=step, pending=waiting)
                        reason = "pending"
                        break

                    round_chunks = self._generate_round(
                        model=model,
                        assistant=assistant,
                        history=history,
                        registry=registry,
                        memories=memory_list,
                        input_transformers=input_transformers,
                        output_transformers=output_transformers,
                        truncate_index=truncate_index,
                        workflow_phase=workflow_phase,
                        ctx=ctx,
                        step=step,
                        log_run=log_run,
                    )
                    async with aclosing(round_chunks) as emissions:
                        async for history, emitted in emissions:
                            yield GenerationChunk(emitted)

                    last = history[-1]
                    calls = last.unexecuted_tool_calls()
                    if not calls:
                        reason = "completed"
                        break

                    gated = gate(calls, registry)
                    if gated.calls != calls:
                        history = replace_last(history, replace_tool_calls(last, gated.calls))
                        yield GenerationChunk(history)
                    if gated.suspended:
                        pending = pending_calls(history[-1])
                        LOGGER.info("Waiting for tool approval (%d pending)", len(pending))
                        log_run.log_suspended(step=step, pending=pending)
                        reason = "suspended"
                        break
                    to_process = gated.calls
                else:
                    LOGGER.info("Resuming with %d approved/denied tool calls", len(resumable))
                    to_process = last.unexecuted_tool_calls()

                executor = ToolCallExecutor(
                    registry,
                    ExecutorConfig(log_arguments=self._config.log_arguments),
                )
                executed = await executor.run_all(to_process, phase=workflow_phase)
                if not executed:
                    reason = "nothing_executed"
                    break

                log_run.log_tools(step=step, calls=executed)
                history = replace_last(history, replace_tool_calls(history[-1], executed))
                yield GenerationChunk(await apply_transforms(output_transformers, ctx, history))

            log_run.log_completion(
                steps=step + 1,
                message=history[-1] if history else None,
                reason=reason,
            )

    async def translate_text(
        self,
        *,
        model: Model,
        source_text: str,
        target_language: str,
        prompt_template: str = DEFAULT_TRANSLATION_PROMPT,
    ) -> AsyncIterator[str]:
        """Translate ``source_text`` and yield the translation as it grows.

        Dedicated machine-translation models (see
        :data:`TRANSLATION_MODEL_PATTERN`) get the raw text in one request with
        ``translation_options`` in the body. Every other model streams a
        reply to ``prompt_template``; each yield is the whole translation so
        far. Blank text is never yielded.

        Args:
            model: Model to translate with.
            source_text: Text to translate.
            target_language: Target language name, e.g. ``"French"``.
            prompt_template: Template with ``{source_text}`` and
                ``{target_lang}`` placeholders.

        Yields:
            The accumulated translation.
        """
        if TRANSLATION_MODEL_PATTERN.search(model.model_id):
            LOGGER.info("Translating with machine-translation model %s", model.model_id)
            params = TextGenerationParams(
                model=model,
                temperature=TRANSLATION_TEMPERATURE,
                top_p=0.95,
                custom_body=(
                    CustomBody(
                        "translation_options",
                        {"source_lang": "auto", "target_lang": target_language},
                    ),
                ),
            )
            chunk = await self._provider.generate_text([Message.user(source_text)], params)
            if chunk.content.strip():
                yield chunk.content
            return

        prompt = build_translation_prompt(source_text, target_language, prompt_template)
        params = TextGenerationParams(model=model, temperature=TRANSLATION_TEMPERATURE)
        history: tuple[Message, ...] = (Message.user(prompt),)
        async for chunk in self._provider.stream_text(history, params):
            history = apply_chunk(history, chunk)
            translated = history[-1].text() if history[-1].role is MessageRole.ASSISTANT else ""
            if translated.strip():
                yield translated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate_round(
        self,
        *,
        model: Model,
        assistant: Assistant,
        history: tuple[Message, ...],
        registry: ToolRegistry,
        memories: Sequence[AssistantMemory],
        input_transformers: Sequence[InputMessageTransformer],
        output_transformers: Sequence[OutputMessageTransformer],
        truncate_index: int,
        workflow_phase: WorkflowPhase | None,
        ctx: TransformerContext,
        step: int,
        log_run: GenerationEventLogRun | _NullGenerationEventLogRun,
    ) -> AsyncIterator[tuple[tuple[Message, ...], tuple[Message, ...]]]:
        """Yield ``(kept, emitted)`` conversation pairs for one provider round.

        The last pair is the finished conversation, with visual and finish
        transforms applied and the completion time stamped.
        """
        tool_list = list(registry)
        system_prompt = await build_system_prompt(
            model=model,
            assistant=assistant,
            messages=history,
            memories=memories,
            tools=tool_list,
            workflow_phase=workflow_phase,
            conversation_repo=self._conversation_repo,
        )
        request = await build_internal_messages(
            system_prompt=system_prompt,
            messages=history,
            assistant=assistant,
            truncate_index=truncate_index,
            transformers=input_transformers,
            ctx=ctx,
        )
        params = self._build_params(model, assistant, registry)
        log_run.log_request(
            step=step,
            messages=request,
            tool_names=registry.list_names(),
            stream=assistant.stream_output,
        )

        start = round_start(history)
        if assistant.stream_output:
            async for chunk in self._provider.stream_text(request, params):
                history = apply_chunk(history, chunk, start=start)
                history = await apply_transforms(output_transformers, ctx, history)
                yield history, await apply_visual_transforms(output_transformers, ctx, history)
        else:
            chunk = await self._provider.generate_text(request, params)
            history = apply_chunk(history, chunk, start=start)
            history = await apply_transforms(output_transformers, ctx, history)

        if not history or history[-1].role is not MessageRole.ASSISTANT:
            # The provider produced nothing; still finish on an assistant message.
            history = apply_chunk(history, ProviderChunk())
        history = await apply_visual_transforms(output_transformers, ctx, history)
        history = await apply_generation_finish(output_transformers, ctx, history)
        history = mark_finished(history)
        yield history, history

    def _build_registry(self, assistant: Assistant, tools: Sequence[Tool]) -> ToolRegistry:
        candidates: list[Tool] = []
        if assistant.enable_memory:
            if self._memory_store is None:
                LOGGER.warning("Memory is enabled for assistant %s but no memory store is configured", assistant.id)
            else:
                candidates.extend(build_memory_tools(self._memory_store, memory_scope(assistant)))
        candidates.extend(tools)
        return ToolRegistry.from_tools(candidates)

    async def _resolve_memories(
        self,
        assistant: Assistant,
        memories: Sequence[AssistantMemory] | None,
    ) -> tuple[AssistantMemory, ...]:
        if memories is not None:
            return tuple(memories)
        if not assistant.enable_memory or self._memory_store is None:
            return ()
        return tuple(await self._memory_store.list_memories(memory_scope(assistant)))

    @staticmethod
    def _build_params(model: Model, assistant: Assistant, registry: ToolRegistry) -> TextGenerationParams:
        return TextGenerationParams(
            model=model,
            temperature=assistant.temperature,
            top_p=assistant.top_p,
            max_tokens=assistant.max_tokens,
            tools=tuple(registry.get_openai_tools()),
            thinking_budget=assistant.thinking_budget,
            custom_headers=assistant.custom_headers + model.custom_headers,
            custom_body=assistant.custom_bodies + model.custom_bodies,
        )
