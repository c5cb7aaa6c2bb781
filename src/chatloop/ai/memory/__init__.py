"""Assistant memory store and the built-in memory tools."""

from .store import GLOBAL_MEMORY_ID, AssistantMemory, InMemoryMemoryStore, MemoryNotFoundError, MemoryStore
from .tools import CREATE_MEMORY, DELETE_MEMORY, EDIT_MEMORY, build_memory_prompt, build_memory_tools

__all__ = [
    "GLOBAL_MEMORY_ID",
    "AssistantMemory",
    "MemoryStore",
    "InMemoryMemoryStore",
    "MemoryNotFoundError",
    "CREATE_MEMORY",
    "EDIT_MEMORY",
    "DELETE_MEMORY",
    "build_memory_tools",
    "build_memory_prompt",
]
