"""Redaction and size limiting for run record safety.

Removes secret patterns (API keys, tokens, passwords) from captured
command output and agent transcripts, and enforces size limits so a
noisy build log cannot bloat a run record.
"""

from __future__ import annotations

import re

# Regex patterns that match common secret formats.
REDACTION_PATTERNS: list[str] = [
    r"(?i)bearer\s+[a-zA-Z0-9._-]+",  # Bearer tokens (before general auth pattern)
    r"sk-ant-[a-zA-Z0-9-]{20,}",  # Anthropic API key values
    r"sk-[a-zA-Z0-9_-]{20,}",  # OpenAI API key pattern
    r"(?i)(api[_-]?key|secret|password|token|authorization)\s*[:=]\s*\S+",
    r"(?i)x-api-key:\s*\S+",
    r"ghp_[a-zA-Z0-9]{36}",  # GitHub PATs
    r"gho_[a-zA-Z0-9]{36}",  # GitHub OAuth tokens
    r"npm_[a-zA-Z0-9]{36}",  # npm automation tokens
]

_COMPILED_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p) for p in REDACTION_PATTERNS
]

REDACTED_PLACEHOLDER = "[REDACTED]"


def redact_content(content: str) -> str:
    """Replace secret patterns in content with [REDACTED].

    Args:
        content: The string to redact.

    Returns:
        Content with matching secret patterns replaced.
    """
    for pattern in _COMPILED_PATTERNS:
        content = pattern.sub(REDACTED_PLACEHOLDER, content)
    return content


def truncate_content(content: str, max_size: int) -> str:
    """Truncate content to max_size characters, appending a notice if truncated.

    Command output keeps its tail rather than its head: failures are
    reported at the end of a build or test log.

    Args:
        content: The string to truncate.
        max_size: Maximum allowed length in characters.

    Returns:
        Original content if within limit, otherwise the last max_size
        characters prefixed with a '[truncated] ...' notice.
    """
    if len(content) <= max_size:
        return content
    if max_size <= 0:
        return "[truncated]"
    return "[truncated] ..." + content[-max_size:]


def sanitize_output(raw: bytes | None, max_size: int) -> str:
    """Decode captured process output, redact secrets, and truncate."""
    if not raw:
        return ""
    text = raw.decode("utf-8", errors="replace")
    return truncate_content(redact_content(text), max_size)
