"""Assistant and model configuration consumed by the generation loop."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

__all__ = [
    "CustomHeader",
    "CustomBody",
    "Model",
    "Assistant",
]


@dataclass(slots=True, frozen=True)
class CustomHeader:
    """Extra HTTP header sent with every request."""

    name: str
    value: str


@dataclass(slots=True, frozen=True)
class CustomBody:
    """Extra top-level JSON field merged into the request body."""

    key: str
    value: Any


@dataclass(slots=True, frozen=True)
class Model:
    """A model offered by a provider.

    Attributes:
        model_id: Identifier sent to the provider API.
        display_name: Human-readable label.
        custom_headers: Headers appended after the assistant's own.
        custom_bodies: Body fields appended after the assistant's own.
    """

    model_id: str
    display_name: str = ""
    custom_headers: tuple[CustomHeader, ...] = ()
    custom_bodies: tuple[CustomBody, ...] = ()

    @property
    def label(self) -> str:
        return self.display_name or self.model_id


@dataclass(slots=True, frozen=True)
class Assistant:
    """Per-assistant generation settings.

    Attributes:
        id: Stable identifier; scopes assistant-local memories.
        name: Display name.
        system_prompt: Base system prompt, may be blank.
        temperature: Sampling temperature, provider default when ``None``.
        top_p: Nucleus sampling, provider default when ``None``.
        max_tokens: Completion cap, provider default when ``None``.
        thinking_budget: Reasoning budget for models that support it.
        context_message_size: Number of history messages kept (<= 0 keeps all).
        stream_output: Whether to stream the provider response.
        enable_memory: Expose memory tools and the memory summary.
        use_global_memory: Store memories in the shared global scope.
        enable_recent_chats_reference: Inject recent conversation titles.
        custom_headers: Extra headers for every request.
        custom_bodies: Extra body fields for every request.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    system_prompt: str = ""
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    thinking_budget: int | None = None
    context_message_size: int = 64
    stream_output: bool = True
    enable_memory: bool = False
    use_global_memory: bool = False
    enable_recent_chats_reference: bool = False
    custom_headers: tuple[CustomHeader, ...] = ()
    custom_bodies: tuple[CustomBody, ...] = ()
