"""Multi-step tool-calling generation loop."""

# Core types
from .types import (
    MessageRole,
    WorkflowPhase,
    ApprovalState,
    Auto,
    Pending,
    Approved,
    Denied,
    AUTO,
    PENDING,
    APPROVED,
    TextPart,
    ToolCallPart,
    Part,
    Usage,
    Message,
    GenerationChunk,
)
from .errors import (
    GenerationError,
    ToolNotFoundError,
    PolicyViolationError,
    ApprovalError,
)
from .provider import Provider, ProviderChunk, TextGenerationParams, ToolCallDelta

# Tool system
from .tools import (
    Tool,
    ToolSpec,
    SimpleTool,
    ToolRegistry,
    DuplicateToolError,
    ToolCallExecutor,
)

# Approval and phase gating
from .approval import GateResult, approve, deny, gate, pending_calls, resolved_calls
from . import phase_guard

# Transformers
from .transformers import (
    TransformerContext,
    InputMessageTransformer,
    OutputMessageTransformer,
    SandboxContextFileTransformer,
)

# Loop
from .prompts import ConversationRepository
from .event_log import GenerationEventLogger
from .generation import GenerationConfig, GenerationHandler

__all__ = [
    # types.py
    "MessageRole",
    "WorkflowPhase",
    "ApprovalState",
    "Auto",
    "Pending",
    "Approved",
    "Denied",
    "AUTO",
    "PENDING",
    "APPROVED",
    "TextPart",
    "ToolCallPart",
    "Part",
    "Usage",
    "Message",
    "GenerationChunk",
    # errors.py
    "GenerationError",
    "ToolNotFoundError",
    "PolicyViolationError",
    "ApprovalError",
    # provider.py
    "Provider",
    "ProviderChunk",
    "TextGenerationParams",
    "ToolCallDelta",
    # tools
    "Tool",
    "ToolSpec",
    "SimpleTool",
    "ToolRegistry",
    "DuplicateToolError",
    "ToolCallExecutor",
    # approval.py / phase_guard.py
    "GateResult",
    "approve",
    "deny",
    "gate",
    "pending_calls",
    "resolved_calls",
    "phase_guard",
    # transformers.py
    "TransformerContext",
    "InputMessageTransformer",
    "OutputMessageTransformer",
    "SandboxContextFileTransformer",
    # loop
    "ConversationRepository",
    "GenerationEventLogger",
    "GenerationConfig",
    "GenerationHandler",
]
