"""Built-in memory tools and the memory section of the system prompt."""

from __future__ import annotations

import textwrap
from typing import Any, Mapping, Sequence

from ..orchestration.tools.types import SimpleTool, ToolSpec
from .store import AssistantMemory, MemoryStore

__all__ = [
    "CREATE_MEMORY",
    "EDIT_MEMORY",
    "DELETE_MEMORY",
    "build_memory_tools",
    "build_memory_prompt",
]

CREATE_MEMORY = "create_memory"
EDIT_MEMORY = "edit_memory"
DELETE_MEMORY = "delete_memory"


def _require_text(arguments: Mapping[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value


def _require_id(arguments: Mapping[str, Any]) -> int:
    value = arguments.get("id")
    if isinstance(value, bool):
        raise ValueError("'id' must be an integer")
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError("'id' must be an integer") from exc


def build_memory_tools(store: MemoryStore, scope_id: str) -> list[SimpleTool]:
    """Create the memory tools bound to ``store`` and ``scope_id``.

    Args:
        store: Memory persistence.
        scope_id: Assistant id, or ``GLOBAL_MEMORY_ID`` for shared memory.
    """

    async def create(arguments: Mapping[str, Any]) -> dict[str, Any]:
        memory = await store.add_memory(scope_id, _require_text(arguments, "content"))
        return {"id": memory.id, "content": memory.content}

    async def edit(arguments: Mapping[str, Any]) -> dict[str, Any]:
        memory = await store.update_content(_require_id(arguments), _require_text(arguments, "content"))
        return {"id": memory.id, "content": memory.content}

    async def delete(arguments: Mapping[str, Any]) -> dict[str, Any]:
        memory_id = _require_id(arguments)
        await store.delete_memory(memory_id)
        return {"id": memory_id, "deleted": True}

    return [
        SimpleTool(
            spec=ToolSpec(
                name=CREATE_MEMORY,
                description="Create a memory record about the user or the conversation.",
                parameters={
                    "type": "object",
                    "properties": {
                        "content": {"type": "string", "description": "The content to remember."},
                    },
                    "required": ["content"],
                },
            ),
            handler=create,
        ),
        SimpleTool(
            spec=ToolSpec(
                name=EDIT_MEMORY,
                description="Update the content of an existing memory record.",
                parameters={
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer", "description": "Id of the memory to update."},
                        "content": {"type": "string", "description": "The new content."},
                    },
                    "required": ["id", "content"],
                },
            ),
            handler=edit,
        ),
        SimpleTool(
            spec=ToolSpec(
                name=DELETE_MEMORY,
                description="Delete a memory record that is wrong or no longer relevant.",
                parameters={
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer", "description": "Id of the memory to delete."},
                    },
                    "required": ["id"],
                },
            ),
            handler=delete,
        ),
    ]


def build_memory_prompt(memories: Sequence[AssistantMemory]) -> str:
    """Render stored memories as a system-prompt section."""
    records = "\n".join(
        f"<record>\n<id>{memory.id}</id>\n<content>{memory.content}</content>\n</record>"
        for memory in memories
    )
    header = textwrap.dedent(
        f"""\
        ## Memories
        You can remember facts across conversations with the {CREATE_MEMORY}, {EDIT_MEMORY} and
        {DELETE_MEMORY} tools. Store stable preferences and facts about the user, update a
        record when it changes, and delete records that are wrong. Do not store secrets."""
    )
    return f"{header}\n<memories>\n{records}\n</memories>" if records else f"{header}\n<memories>\n</memories>"
