"""Tests for the workflow phase guard."""

from __future__ import annotations

import json

import pytest

from chatloop.ai.orchestration import phase_guard
from chatloop.ai.orchestration.errors import PolicyViolationError
from chatloop.ai.orchestration.types import WorkflowPhase


READ_ONLY_PHASES = (WorkflowPhase.PLAN, WorkflowPhase.REVIEW)


class TestIsAllowed:
    """Tests for phase_guard.is_allowed."""

    @pytest.mark.parametrize("tool", ["sandbox_file", "sandbox_shell", "custom_tool", "eval_javascript"])
    def test_execute_allows_everything(self, tool: str) -> None:
        assert phase_guard.is_allowed(WorkflowPhase.EXECUTE, tool, "write") is True
        assert phase_guard.is_allowed(WorkflowPhase.EXECUTE, tool, None) is True

    @pytest.mark.parametrize("phase", READ_ONLY_PHASES)
    def test_read_only_phases_allow_read(self, phase: WorkflowPhase) -> None:
        assert phase_guard.is_allowed(phase, "sandbox_file", "read") is True
        assert phase_guard.is_allowed(phase, "sandbox_dev", "git_diff") is True

    @pytest.mark.parametrize("phase", READ_ONLY_PHASES)
    def test_read_only_phases_deny_write(self, phase: WorkflowPhase) -> None:
        assert phase_guard.is_allowed(phase, "sandbox_file", "write") is False
        assert phase_guard.is_allowed(phase, "sandbox_dev", "git_commit") is False

    @pytest.mark.parametrize("phase", READ_ONLY_PHASES)
    def test_sandbox_tool_without_operation_is_denied(self, phase: WorkflowPhase) -> None:
        assert phase_guard.is_allowed(phase, "sandbox_python", None) is False

    @pytest.mark.parametrize("phase", READ_ONLY_PHASES)
    def test_non_sandbox_tools(self, phase: WorkflowPhase) -> None:
        assert phase_guard.is_allowed(phase, "search_web") is True
        assert phase_guard.is_allowed(phase, "eval_javascript") is True
        assert phase_guard.is_allowed(phase, "create_memory") is False

    def test_unknown_operation_is_denied(self) -> None:
        assert phase_guard.is_allowed(WorkflowPhase.PLAN, "sandbox_file", "teleport") is False

    def test_decision_is_stable(self) -> None:
        results = {phase_guard.is_allowed(WorkflowPhase.REVIEW, "sandbox_file", "read") for _ in range(5)}
        assert results == {True}

    @pytest.mark.parametrize("phase", READ_ONLY_PHASES)
    @pytest.mark.parametrize("operation", ["zip_create", "unzip", "git_reset", "move"])
    def test_operations_outside_the_read_set_are_denied(self, phase: WorkflowPhase, operation: str) -> None:
        assert operation not in phase_guard.READONLY_OPERATIONS
        assert phase_guard.is_allowed(phase, "sandbox_file", operation) is False


def test_public_names_exist() -> None:
    missing = [name for name in phase_guard.__all__ if not hasattr(phase_guard, name)]
    assert missing == []
    assert "WRITE_OPERATIONS" not in phase_guard.__all__


class TestExtractOperation:
    """Tests for phase_guard.extract_operation."""

    def test_reads_operation_field(self) -> None:
        assert phase_guard.extract_operation(json.dumps({"operation": "write", "path": "a"})) == "write"

    @pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", '"write"', "{}", '{"operation": null}'])
    def test_missing_or_malformed_is_none(self, raw: str) -> None:
        assert phase_guard.extract_operation(raw) is None

    def test_structured_value_is_none(self) -> None:
        assert phase_guard.extract_operation('{"operation": {"kind": "write"}}') is None

    def test_scalar_values_become_text(self) -> None:
        assert phase_guard.extract_operation('{"operation": 3}') == "3"
        assert phase_guard.extract_operation('{"operation": true}') == "true"


class TestCheck:
    """Tests for phase_guard.check."""

    def test_no_phase_never_raises(self) -> None:
        phase_guard.check(None, "sandbox_file", '{"operation": "delete"}')

    def test_violation_carries_explanation(self) -> None:
        with pytest.raises(PolicyViolationError) as excinfo:
            phase_guard.check(WorkflowPhase.PLAN, "sandbox_file", '{"operation": "write"}')
        error = excinfo.value
        assert "PLAN phase" in str(error)
        assert "'write' is not allowed" in str(error)
        assert error.tool_name == "sandbox_file"
        assert error.operation == "write"

    def test_allowed_call_passes(self) -> None:
        phase_guard.check(WorkflowPhase.REVIEW, "sandbox_file", '{"operation": "read"}')


class TestTexts:
    """Tests for blocked_reason, phase_prompt and needs_approval."""

    def test_blocked_reason_differs_per_phase(self) -> None:
        plan = phase_guard.blocked_reason(WorkflowPhase.PLAN, "sandbox_file", "write")
        review = phase_guard.blocked_reason(WorkflowPhase.REVIEW, "sandbox_file", "write")
        assert plan != review
        assert "REVIEW phase" in review

    def test_blocked_reason_falls_back_to_tool_name(self) -> None:
        text = phase_guard.blocked_reason(WorkflowPhase.PLAN, "create_memory")
        assert "'create_memory' is not allowed" in text

    def test_execute_reason_is_internal_error(self) -> None:
        assert "Internal error" in phase_guard.blocked_reason(WorkflowPhase.EXECUTE, "x")

    @pytest.mark.parametrize("phase", list(WorkflowPhase))
    def test_phase_prompt_names_phase(self, phase: WorkflowPhase) -> None:
        assert f"[Current workflow phase: {phase.name}]" in phase_guard.phase_prompt(phase)

    @pytest.mark.parametrize("phase", list(WorkflowPhase))
    def test_needs_approval_is_always_false(self, phase: WorkflowPhase) -> None:
        assert phase_guard.needs_approval(phase, "sandbox_shell", "write") is False
