"""structlog configuration shared by every anvil entry point."""

from __future__ import annotations

import logging

import structlog

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(log_format: str = "console", level: str = "info") -> None:
    """Configure structlog with a console or JSON renderer.

    Args:
        log_format: "console" for human output, "json" for one object per line.
        level: Minimum level name (debug, info, warning, error).

    Raises:
        ValueError: If the format or level is not recognized.
    """
    if log_format == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    elif log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        raise ValueError(
            f"Invalid log format: {log_format!r}. Must be 'console' or 'json'."
        )

    if level.lower() not in _LEVELS:
        raise ValueError(
            f"Invalid log level: {level!r}. Must be one of {sorted(_LEVELS)}."
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[level.lower()]),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )
