"""Workflow phase guard.

Decides whether a tool operation may run in the current workflow phase:

- ``PLAN``: read-only analysis.
- ``EXECUTE``: everything is allowed.
- ``REVIEW``: read-only inspection.

Every function here is pure and synchronous, so it is safe to call
repeatedly and from any task.
"""

from __future__ import annotations

import json
import textwrap

from .errors import PolicyViolationError
from .types import WorkflowPhase

__all__ = [
    "SANDBOX_TOOLS",
    "SAFE_TOOLS",
    "READONLY_OPERATIONS",
    "is_allowed",
    "blocked_reason",
    "needs_approval",
    "extract_operation",
    "check",
    "phase_prompt",
]

# Tools acting on the per-conversation sandbox; decided per operation.
SANDBOX_TOOLS = frozenset(
    {
        "sandbox_file",
        "sandbox_python",
        "sandbox_shell",
        "sandbox_data",
        "sandbox_dev",
    }
)

# Non-sandbox tools that stay available in read-only phases.
SAFE_TOOLS = frozenset({"eval_javascript", "search_web"})

# Sandbox operations allowed in read-only phases; every other operation is refused.
READONLY_OPERATIONS = frozenset(
    {
        "read",
        "list",
        "stat",
        "exists",
        "git_status",
        "git_log",
        "git_branch",
        "git_diff",
    }
)


def is_allowed(phase: WorkflowPhase, tool_name: str, operation: str | None = None) -> bool:
    """Return True if ``tool_name``/``operation`` may run in ``phase``.

    Args:
        phase: The active workflow phase.
        tool_name: Name of the requested tool.
        operation: Sandbox operation, when the tool has one.
    """
    if phase is WorkflowPhase.EXECUTE:
        return True
    if phase in (WorkflowPhase.PLAN, WorkflowPhase.REVIEW):
        if tool_name not in SANDBOX_TOOLS:
            return tool_name in SAFE_TOOLS
        if operation is None:
            return False
        return operation in READONLY_OPERATIONS
    raise TypeError(f"Unknown workflow phase: {phase!r}")


def needs_approval(phase: WorkflowPhase, tool_name: str, operation: str | None = None) -> bool:
    """Phase-driven approval requirement.

    Always False: phases restrict through :func:`is_allowed` at execution
    time and never turn a call into an approval prompt. Approval comes only
    from the tool definition.
    """
    return False


def extract_operation(arguments: str | None) -> str | None:
    """Read the ``"operation"`` field out of raw JSON tool arguments.

    Returns None on malformed JSON, a non-object payload, a missing field or
    a non-scalar value.
    """
    if not arguments:
        return None
    try:
        payload = json.loads(arguments)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    operation = payload.get("operation")
    if operation is None or isinstance(operation, (dict, list)):
        return None
    if isinstance(operation, bool):
        return "true" if operation else "false"
    return str(operation)


def check(phase: WorkflowPhase | None, tool_name: str, arguments: str | None) -> None:
    """Raise :class:`PolicyViolationError` if the call is not allowed.

    A missing phase disables gating entirely.
    """
    if phase is None:
        return
    operation = extract_operation(arguments)
    if not is_allowed(phase, tool_name, operation):
        raise PolicyViolationError(
            blocked_reason(phase, tool_name, operation),
            tool_name=tool_name,
            operation=operation,
        )


def blocked_reason(phase: WorkflowPhase, tool_name: str, operation: str | None = None) -> str:
    """Explain to the model why an operation was refused."""
    target = operation or tool_name
    if phase is WorkflowPhase.PLAN:
        return textwrap.dedent(
            f"""\
            Operation blocked: the conversation is in the PLAN phase.

            '{target}' is not allowed in this phase. PLAN only permits read-only work:
            - reading files (read)
            - listing directories (list)
            - inspecting git status and history (git_status, git_log)
            - analysing existing code and data

            Tell the user: "Switch to the EXECUTE phase to run write or execute operations."
            Finish the requirements analysis and the plan in the current phase first."""
        )
    if phase is WorkflowPhase.REVIEW:
        return textwrap.dedent(
            f"""\
            Operation blocked: the conversation is in the REVIEW phase.

            '{target}' is not allowed in this phase. REVIEW only permits read-only work:
            - viewing source files (read)
            - comparing changes (git_diff)
            - checking quality and security

            Tell the user: "Found issues that need changes; switch to the EXECUTE phase to fix them."
            Only review in this phase, do not modify anything."""
        )
    if phase is WorkflowPhase.EXECUTE:
        return "Internal error: operations should never be blocked in the EXECUTE phase."
    raise TypeError(f"Unknown workflow phase: {phase!r}")


def phase_prompt(phase: WorkflowPhase) -> str:
    """Instructional block describing what the model may do in ``phase``."""
    if phase is WorkflowPhase.PLAN:
        return textwrap.dedent(
            """\
            [Current workflow phase: PLAN]
            Only read-only operations are available for analysis and planning:
            - allowed: view file contents, list directories, check file status
            - allowed: inspect history with git status/log
            - allowed: read data to analyse requirements
            - not allowed: write, modify or delete files or directories
            - not allowed: run Python or shell code
            - not allowed: install packages
            - not allowed: git add/commit/push or other write operations

            If a forbidden operation is needed, tell the user: "Switch to the EXECUTE phase to run this."
            Use this phase to produce a complete plan listing the files and steps involved."""
        )
    if phase is WorkflowPhase.EXECUTE:
        return textwrap.dedent(
            """\
            [Current workflow phase: EXECUTE]
            All operations are available to complete the task:
            - write, modify and delete files
            - run Python code (sandbox_python) and shell commands (sandbox_shell)
            - install packages
            - git add/commit/push
            - create directories, copy and move files

            All file operations stay inside the conversation sandbox."""
        )
    if phase is WorkflowPhase.REVIEW:
        return textwrap.dedent(
            """\
            [Current workflow phase: REVIEW]
            Only read-only operations are available for reviewing the work:
            - allowed: view file contents and compare changes
            - allowed: check style, security and performance issues
            - allowed: list directories to inspect the project layout
            - allowed: inspect history with git log/diff
            - not allowed: modify any file or code
            - not allowed: run any code or script

            If something needs fixing, tell the user: "Found an issue; switch to the EXECUTE phase to fix it."
            List every finding by severity with a concrete fix suggestion."""
        )
    raise TypeError(f"Unknown workflow phase: {phase!r}")
