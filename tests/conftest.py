"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from chatloop.ai.settings import Assistant, Model


@pytest.fixture
def model() -> Model:
    return Model(model_id="test-model", display_name="Test Model")


@pytest.fixture
def assistant() -> Assistant:
    return Assistant(id="assistant-1", name="Tester", system_prompt="You are helpful.", stream_output=False)


@pytest.fixture
def streaming_assistant() -> Assistant:
    return Assistant(id="assistant-1", name="Tester", system_prompt="You are helpful.", stream_output=True)
