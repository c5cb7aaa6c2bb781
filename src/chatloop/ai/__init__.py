"""Generation loop, provider client and assistant memory."""

from .orchestration import GenerationConfig, GenerationHandler
from .client import AIClient, ClientSettings
from .settings import Assistant, CustomBody, CustomHeader, Model

__all__ = [
    "GenerationConfig",
    "GenerationHandler",
    "AIClient",
    "ClientSettings",
    "Assistant",
    "CustomBody",
    "CustomHeader",
    "Model",
]
