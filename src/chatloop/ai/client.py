"""Async provider built around OpenAI-compatible chat-completion endpoints."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Sequence

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .orchestration.provider import ProviderChunk, TextGenerationParams, ToolCallDelta
from .orchestration.types import Message, MessageRole, TextPart, ToolCallPart, Usage

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


@dataclass(slots=True)
class ClientSettings:
    """Connection settings for :class:`AIClient`."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    model: str = ""
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ClientSettings:
        """Read ``OPENAI_API_KEY``, ``OPENAI_BASE_URL`` and ``CHATLOOP_MODEL``.

        Raises:
            ValueError: If no API key is set.
        """
        env = os.environ if environ is None else environ
        api_key = (env.get("OPENAI_API_KEY") or "").strip()
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not set")
        return cls(
            api_key=api_key,
            base_url=(env.get("OPENAI_BASE_URL") or "").strip() or DEFAULT_BASE_URL,
            model=(env.get("CHATLOOP_MODEL") or "").strip(),
        )


def reasoning_effort(thinking_budget: int | None) -> str | None:
    """Map a thinking budget onto the OpenAI ``reasoning_effort`` levels."""
    if thinking_budget is None or thinking_budget < 0:
        return None
    if thinking_budget == 0:
        return "minimal"
    if thinking_budget <= 1024:
        return "low"
    if thinking_budget <= 16_000:
        return "medium"
    return "high"


def to_chat_messages(messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """Convert conversation messages to chat-completion message params.

    An assistant message is split at every group of executed tool calls:
    each group becomes an assistant entry carrying the text before it plus
    ``tool_calls``, followed by one ``tool`` message per result, so text the
    model wrote after a result stays after it. Unexecuted calls are left out
    since the API rejects calls without results.
    """
    converted: List[Dict[str, Any]] = []
    for message in messages:
        if message.role is MessageRole.ASSISTANT:
            converted.extend(_assistant_entries(message))
        elif message.role is MessageRole.TOOL:
            converted.append(
                {
                    "role": "tool",
                    "tool_call_id": str(message.metadata.get("tool_call_id", "")),
                    "content": message.text(),
                }
            )
        else:
            converted.append({"role": message.role.value, "content": message.text()})
    return converted


def _assistant_entries(message: Message) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    text: List[str] = []
    calls: List[ToolCallPart] = []

    def flush() -> None:
        content = "".join(text) or None
        if content is None and not calls:
            return
        entry: Dict[str, Any] = {"role": "assistant", "content": content}
        if calls:
            entry["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": call.input or "{}"},
                }
                for call in calls
            ]
        entries.append(entry)
        for call in calls:
            entries.append(
                {
                    "role": "tool",
                    "tool_call_id": call.call_id,
                    "content": "".join(part.text for part in call.output or ()),
                }
            )
        text.clear()
        calls.clear()

    for part in message.parts:
        if isinstance(part, TextPart):
            if calls:
                flush()
            text.append(part.text)
        elif part.executed:
            calls.append(part)
    flush()
    return entries


class AIClient:
    """Provider implementation over ``openai.AsyncOpenAI`` with retry semantics.

    Only the request itself is retried. A stream failing midway raises to the
    caller, since chunks were already handed out.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def generate_text(
        self,
        messages: Sequence[Message],
        params: TextGenerationParams,
    ) -> ProviderChunk:
        payload = self._build_chat_payload(messages, params)
        LOGGER.debug(
            "Starting chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        async for attempt in self._retrying():
            with attempt:
                response = await self._client.chat.completions.create(**payload)
        return self._normalize_completion(response)

    async def stream_text(
        self,
        messages: Sequence[Message],
        params: TextGenerationParams,
    ) -> AsyncIterator[ProviderChunk]:
        payload = self._build_chat_payload(messages, params)
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s)",
            payload["model"],
            len(payload["messages"]),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        async for attempt in self._retrying():
            with attempt:
                stream = await self._client.chat.completions.create(**payload)
        async for event in stream:
            chunk = self._normalize_stream_chunk(event)
            if chunk is not None:
                yield chunk

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""
        await self._client.close()

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIError,
                    APIStatusError,
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _build_chat_payload(self, messages: Sequence[Message], params: TextGenerationParams) -> Dict[str, Any]:
        chat_messages = to_chat_messages(messages)
        if not chat_messages:
            raise ValueError("At least one message is required to start a chat")
        model_id = params.model.model_id or self._settings.model
        if not model_id:
            raise ValueError("No model configured for the request")

        payload: Dict[str, Any] = {
            "model": model_id,
            "messages": chat_messages,
        }
        if params.tools:
            payload["tools"] = [dict(tool) for tool in params.tools]
        if params.temperature is not None:
            payload["temperature"] = params.temperature
        if params.top_p is not None:
            payload["top_p"] = params.top_p
        if params.max_tokens is not None:
            payload["max_tokens"] = params.max_tokens
        effort = reasoning_effort(params.thinking_budget)
        if effort is not None:
            payload["reasoning_effort"] = effort
        if params.custom_headers:
            payload["extra_headers"] = {header.name: header.value for header in params.custom_headers}
        if params.custom_body:
            payload["extra_body"] = {body.key: body.value for body in params.custom_body}
        return payload

    def _normalize_completion(self, response: Any) -> ProviderChunk:
        choices = getattr(response, "choices", None) or []
        content = ""
        deltas: list[ToolCallDelta] = []
        finish_reason = None
        if choices:
            choice = choices[0]
            message = getattr(choice, "message", None)
            finish_reason = getattr(choice, "finish_reason", None)
            if message is not None:
                content = getattr(message, "content", None) or ""
                for index, call in enumerate(getattr(message, "tool_calls", None) or []):
                    function = getattr(call, "function", None)
                    deltas.append(
                        ToolCallDelta(
                            index=index,
                            call_id=getattr(call, "id", None) or "",
                            name=getattr(function, "name", None) or "",
                            arguments=getattr(function, "arguments", None) or "",
                        )
                    )
        return ProviderChunk(
            content=content,
            tool_calls=tuple(deltas),
            usage=self._normalize_usage(getattr(response, "usage", None)),
            finish_reason=finish_reason,
            model=getattr(response, "model", None),
        )

    def _normalize_stream_chunk(self, event: Any) -> ProviderChunk | None:
        content = ""
        deltas: list[ToolCallDelta] = []
        finish_reason = None
        choices = getattr(event, "choices", None) or []
        if choices:
            choice = choices[0]
            finish_reason = getattr(choice, "finish_reason", None)
            delta = getattr(choice, "delta", None)
            if delta is not None:
                content = getattr(delta, "content", None) or ""
                for call in getattr(delta, "tool_calls", None) or []:
                    function = getattr(call, "function", None)
                    deltas.append(
                        ToolCallDelta(
                            index=getattr(call, "index", 0) or 0,
                            call_id=getattr(call, "id", None) or "",
                            name=getattr(function, "name", None) or "",
                            arguments=getattr(function, "arguments", None) or "",
                        )
                    )
        chunk = ProviderChunk(
            content=content,
            tool_calls=tuple(deltas),
            usage=self._normalize_usage(getattr(event, "usage", None)),
            finish_reason=finish_reason,
            model=getattr(event, "model", None),
        )
        if chunk.is_empty and finish_reason is None:
            return None
        return chunk

    @staticmethod
    def _normalize_usage(usage: Any) -> Usage | None:
        if usage is None:
            return None
        details = getattr(usage, "prompt_tokens_details", None)
        return Usage(
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            cached_tokens=getattr(details, "cached_tokens", 0) or 0,
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)


__all__ = [
    "AIClient",
    "ClientSettings",
    "DEFAULT_BASE_URL",
    "reasoning_effort",
    "to_chat_messages",
]
