"""Tests for message transformers and the sandbox context file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

import pytest

from chatloop.ai.orchestration.transformers import (
    InputMessageTransformer,
    OutputMessageTransformer,
    SandboxContextFileTransformer,
    TransformerContext,
    apply_generation_finish,
    apply_input,
    apply_transforms,
    apply_visual_transforms,
)
from chatloop.ai.orchestration.types import Message, MessageRole
from chatloop.ai.settings import Assistant, Model


@pytest.fixture
def ctx(model: Model, assistant: Assistant) -> TransformerContext:
    return TransformerContext(model=model, assistant=assistant, conversation_id="conv-1")


class Suffix(InputMessageTransformer):
    def __init__(self, suffix: str) -> None:
        self.suffix = suffix

    async def transform(self, ctx: TransformerContext, messages: Sequence[Message]) -> Sequence[Message]:
        return [Message.user(message.text() + self.suffix) for message in messages]


class TestChaining:
    """Tests for the apply_* helpers."""

    @pytest.mark.asyncio
    async def test_input_transformers_run_in_order(self, ctx: TransformerContext) -> None:
        result = await apply_input([Suffix("a"), Suffix("b")], ctx, [Message.user("x")])
        assert isinstance(result, tuple)
        assert result[0].text() == "xab"

    @pytest.mark.asyncio
    async def test_default_output_hooks_are_identity(self, ctx: TransformerContext) -> None:
        messages = (Message.user("x"),)
        hooks = [OutputMessageTransformer()]
        assert await apply_transforms(hooks, ctx, messages) == messages
        assert await apply_visual_transforms(hooks, ctx, messages) == messages
        assert await apply_generation_finish(hooks, ctx, messages) == messages

    @pytest.mark.asyncio
    async def test_no_transformers_returns_tuple(self, ctx: TransformerContext) -> None:
        messages = [Message.user("x")]
        assert await apply_input([], ctx, messages) == tuple(messages)


# -----------------------------------------------------------------------------
# Tests: SandboxContextFileTransformer
# -----------------------------------------------------------------------------


def _write_context(root: Path, content: str, conversation_id: str = "conv-1") -> Path:
    directory = root / conversation_id
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / SandboxContextFileTransformer.CONTEXT_FILE_NAME
    path.write_text(content, encoding="utf-8")
    return path


class TestSandboxContextFileTransformer:
    """Tests for SandboxContextFileTransformer."""

    @pytest.mark.asyncio
    async def test_appends_to_system_prompt(self, tmp_path: Path, ctx: TransformerContext) -> None:
        _write_context(tmp_path, "Project uses tabs.")
        transformer = SandboxContextFileTransformer(tmp_path)
        messages = [Message.system("Base"), Message.user("hi")]

        result = await transformer.transform(ctx, messages)

        assert result[0].text() == f"Base\n\n{SandboxContextFileTransformer.HEADER}\nProject uses tabs."
        assert result[1] is messages[1]

    @pytest.mark.asyncio
    async def test_inserts_system_message_when_missing(self, tmp_path: Path, ctx: TransformerContext) -> None:
        _write_context(tmp_path, "Context")
        transformer = SandboxContextFileTransformer(tmp_path)

        result = await transformer.transform(ctx, [Message.user("hi")])

        assert [message.role for message in result] == [MessageRole.SYSTEM, MessageRole.USER]
        assert result[0].text() == f"{SandboxContextFileTransformer.HEADER}\nContext"

    @pytest.mark.asyncio
    async def test_missing_or_blank_file_is_noop(self, tmp_path: Path, ctx: TransformerContext) -> None:
        transformer = SandboxContextFileTransformer(tmp_path)
        messages = [Message.user("hi")]
        assert await transformer.transform(ctx, messages) is messages

        _write_context(tmp_path, "   \n")
        assert await transformer.transform(ctx, messages) is messages

    @pytest.mark.asyncio
    async def test_requires_conversation_id(self, tmp_path: Path, model: Model, assistant: Assistant) -> None:
        _write_context(tmp_path, "Context", conversation_id="")
        transformer = SandboxContextFileTransformer(tmp_path)
        messages = [Message.user("hi")]
        result = await transformer.transform(TransformerContext(model=model, assistant=assistant), messages)
        assert result is messages

    @pytest.mark.asyncio
    async def test_large_file_is_truncated(self, tmp_path: Path, ctx: TransformerContext) -> None:
        _write_context(tmp_path, "x" * (SandboxContextFileTransformer.MAX_FILE_SIZE + 10))
        transformer = SandboxContextFileTransformer(tmp_path)

        result = await transformer.transform(ctx, [Message.user("hi")])

        text = result[0].text()
        assert text.endswith("[Context file truncated: exceeded 50KB limit]")
        limit = SandboxContextFileTransformer.MAX_FILE_SIZE
        assert "x" * limit + "\n\n[Context file truncated" in text
        assert "x" * (limit + 1) not in text

    @pytest.mark.asyncio
    async def test_cache_follows_modification_time(self, tmp_path: Path, ctx: TransformerContext) -> None:
        path = _write_context(tmp_path, "first")
        stamp = path.stat().st_mtime_ns
        transformer = SandboxContextFileTransformer(tmp_path)
        await transformer.transform(ctx, [Message.user("hi")])

        path.write_text("second", encoding="utf-8")
        os.utime(path, ns=(stamp, stamp))
        cached = await transformer.transform(ctx, [Message.user("hi")])
        assert cached[0].text().endswith("first")

        os.utime(path, ns=(stamp + 1_000_000_000, stamp + 1_000_000_000))
        reloaded = await transformer.transform(ctx, [Message.user("hi")])
        assert reloaded[0].text().endswith("second")

    @pytest.mark.asyncio
    async def test_clear_cache_forces_reload(self, tmp_path: Path, ctx: TransformerContext) -> None:
        path = _write_context(tmp_path, "first")
        stamp = path.stat().st_mtime_ns
        transformer = SandboxContextFileTransformer(tmp_path)
        await transformer.transform(ctx, [Message.user("hi")])

        path.write_text("second", encoding="utf-8")
        os.utime(path, ns=(stamp, stamp))
        transformer.clear_cache("conv-1")
        result = await transformer.transform(ctx, [Message.user("hi")])
        assert result[0].text().endswith("second")

    def test_sandbox_dir(self, tmp_path: Path) -> None:
        assert SandboxContextFileTransformer(tmp_path).sandbox_dir("abc") == tmp_path / "abc"
