"""Extras validation with security guardrails.

Validates the backend-specific extras passed in AgentConfig, blocking
secret-like keys and enforcing size limits so credentials never end
up in a scenario file or a run record.
"""

from __future__ import annotations

import json

from anvil.errors import ConfigurationError

# Matching is case-insensitive.
BLOCKED_KEYS: frozenset[str] = frozenset({
    "api_key",
    "api_secret",
    "secret",
    "token",
    "password",
    "authorization",
    "secret_key",
    "access_token",
    "refresh_token",
})

MAX_EXTRAS_KEYS: int = 10

MAX_EXTRAS_SIZE: int = 4096


def validate_extras(extras: dict) -> dict:
    """Validate an extras dict for security and size constraints.

    Args:
        extras: The extras dict to validate.

    Returns:
        The validated extras dict (unchanged if valid).

    Raises:
        ConfigurationError: If any validation check fails.
    """
    for key in extras:
        if key.lower() in BLOCKED_KEYS:
            raise ConfigurationError(
                f"Extras key '{key}' is blocked because it looks like a secret or credential. "
                f"Secrets should be configured via environment variables, not passed in extras."
            )

    if len(extras) > MAX_EXTRAS_KEYS:
        raise ConfigurationError(
            f"Extras has {len(extras)} keys, exceeding the limit of {MAX_EXTRAS_KEYS}."
        )

    serialized = json.dumps(extras)
    size = len(serialized.encode("utf-8"))
    if size > MAX_EXTRAS_SIZE:
        raise ConfigurationError(
            f"Extras serialized size is {size} bytes, exceeding the limit of {MAX_EXTRAS_SIZE} bytes."
        )

    return extras
