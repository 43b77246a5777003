"""Adapter registry for resolving adapter names to classes.

Supports builtin adapter names (e.g., "echo", "openai", "claude-cli")
and custom dotted-path imports (e.g., "my.module.MyAdapter").
"""

from __future__ import annotations

import importlib
from typing import TypeVar

from anvil.adapters.base import BaseAgentAdapter, ChatBackend
from anvil.errors import ConfigurationError

# Builtin adapter short names mapped to fully-qualified class paths.
# Hosted adapters are lazily imported -- the provider SDK must be installed.
BUILTIN_ADAPTERS: dict[str, str] = {
    "echo": "anvil.adapters.echo_adapter.EchoAdapter",
    "openai": "anvil.adapters.openai_adapter.OpenAIAdapter",
    "anthropic": "anvil.adapters.anthropic_adapter.AnthropicAdapter",
    "command": "anvil.adapters.command_adapter.CommandAgentAdapter",
    "claude-cli": "anvil.adapters.command_adapter.ClaudeCLIAdapter",
}

# Maps builtin names to their pip install extras for helpful error messages.
_INSTALL_HINTS: dict[str, str] = {
    "openai": "pip install anvil-bench[openai]",
    "anthropic": "pip install anvil-bench[anthropic]",
}

_T = TypeVar("_T")


def _resolve_class(name: str, base: type[_T]) -> type[_T]:
    if name in BUILTIN_ADAPTERS:
        dotted_path = BUILTIN_ADAPTERS[name]
    elif "." in name:
        dotted_path = name
    else:
        available = ", ".join(sorted(BUILTIN_ADAPTERS.keys()))
        raise ConfigurationError(
            f"Unknown adapter '{name}'. "
            f"Available builtin adapters: {available}. "
            f"For custom adapters, provide the full dotted path "
            f"(e.g., 'my.module.MyAdapter')."
        )

    module_path, _, class_name = dotted_path.rpartition(".")
    if not module_path or not class_name:
        raise ConfigurationError(
            f"Invalid adapter path '{dotted_path}'. "
            f"Expected format: 'module.path.ClassName'."
        )

    try:
        module = importlib.import_module(module_path)
        # Hosted adapters only touch their SDK on first use; import it here
        # so a missing extra is reported at selection time.
        if name in _INSTALL_HINTS:
            importlib.import_module(name)
    except ImportError as exc:
        if name in _INSTALL_HINTS:
            raise ConfigurationError(
                f"Adapter '{name}' requires the {name} package. "
                f"Install it: {_INSTALL_HINTS[name]}"
            ) from exc
        raise ConfigurationError(f"Could not import '{module_path}': {exc}") from exc

    cls = getattr(module, class_name, None)
    if cls is None:
        raise ConfigurationError(
            f"Module '{module_path}' has no attribute '{class_name}'."
        )

    if not isinstance(cls, type) or not issubclass(cls, base):
        raise ConfigurationError(
            f"'{dotted_path}' is not a subclass of {base.__name__}. "
            f"Custom adapters must inherit from anvil.adapters.base.{base.__name__}."
        )
    return cls


def get_adapter(name: str) -> BaseAgentAdapter:
    """Resolve an agent adapter by name or dotted path and return an instance.

    Args:
        name: A builtin adapter name or a fully-qualified dotted path
              to a BaseAgentAdapter subclass.

    Raises:
        ConfigurationError: If the name is unknown, cannot be imported
            (e.g., missing SDK), or is not a BaseAgentAdapter subclass.
    """
    return _resolve_class(name, BaseAgentAdapter)()


def get_chat_backend(name: str) -> ChatBackend:
    """Resolve a single-turn chat backend (used by the LLM judge).

    Only adapters implementing ChatBackend qualify: the hosted
    builtins or a custom dotted path.
    """
    return _resolve_class(name, ChatBackend)()
