"""Assistant memory records and their storage contract."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence, runtime_checkable

__all__ = [
    "GLOBAL_MEMORY_ID",
    "AssistantMemory",
    "MemoryStore",
    "InMemoryMemoryStore",
    "MemoryNotFoundError",
]

LOGGER = logging.getLogger(__name__)

# Scope shared by every assistant that opts into global memory.
GLOBAL_MEMORY_ID = "__global__"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class AssistantMemory:
    """A single remembered fact.

    Attributes:
        id: Store-assigned identifier, referenced by ``edit_memory``/``delete_memory``.
        scope_id: Assistant id, or :data:`GLOBAL_MEMORY_ID`.
        content: The remembered text.
        updated_at: Last modification time.
    """

    id: int
    scope_id: str
    content: str
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scope_id": self.scope_id,
            "content": self.content,
            "updated_at": self.updated_at.isoformat(),
        }


class MemoryNotFoundError(KeyError):
    """Raised when a memory id does not exist."""

    def __init__(self, memory_id: int) -> None:
        self.memory_id = memory_id
        super().__init__(f"Memory {memory_id} not found")

    def __str__(self) -> str:
        return str(self.args[0])


@runtime_checkable
class MemoryStore(Protocol):
    """Persistence contract for assistant memories."""

    async def add_memory(self, scope_id: str, content: str) -> AssistantMemory:
        ...

    async def update_content(self, memory_id: int, content: str) -> AssistantMemory:
        ...

    async def delete_memory(self, memory_id: int) -> None:
        ...

    async def list_memories(self, scope_id: str) -> Sequence[AssistantMemory]:
        ...


class InMemoryMemoryStore:
    """Process-local :class:`MemoryStore` keyed by integer ids."""

    def __init__(self) -> None:
        self._records: dict[int, AssistantMemory] = {}
        self._ids = itertools.count(1)

    async def add_memory(self, scope_id: str, content: str) -> AssistantMemory:
        memory = AssistantMemory(id=next(self._ids), scope_id=scope_id, content=content)
        self._records[memory.id] = memory
        LOGGER.debug("Added memory %s to scope %s", memory.id, scope_id)
        return memory

    async def update_content(self, memory_id: int, content: str) -> AssistantMemory:
        current = self._records.get(memory_id)
        if current is None:
            raise MemoryNotFoundError(memory_id)
        updated = replace(current, content=content, updated_at=_utcnow())
        self._records[memory_id] = updated
        return updated

    async def delete_memory(self, memory_id: int) -> None:
        if self._records.pop(memory_id, None) is None:
            raise MemoryNotFoundError(memory_id)

    async def list_memories(self, scope_id: str) -> list[AssistantMemory]:
        return [memory for memory in self._records.values() if memory.scope_id == scope_id]

    def __len__(self) -> int:
        return len(self._records)
