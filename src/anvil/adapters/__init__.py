"""anvil adapters - agent backend abstraction layer.

Re-exports the BaseAgentAdapter and ChatBackend ABCs, the message and
result dataclasses, and the registry functions. Concrete hosted
adapters are resolved lazily through the registry so their SDKs stay
optional.
"""

from anvil.adapters.base import (
    AdapterTurnResult,
    AgentConfig,
    AgentProgress,
    AgentResult,
    BaseAgentAdapter,
    ChatAgentAdapter,
    ChatBackend,
    Message,
    TokenUsage,
    ToolCallResult,
    TurnConfig,
)
from anvil.adapters.registry import get_adapter, get_chat_backend

__all__ = [
    "AdapterTurnResult",
    "AgentConfig",
    "AgentProgress",
    "AgentResult",
    "BaseAgentAdapter",
    "ChatAgentAdapter",
    "ChatBackend",
    "Message",
    "TokenUsage",
    "ToolCallResult",
    "TurnConfig",
    "get_adapter",
    "get_chat_backend",
]
