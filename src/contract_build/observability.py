"""Structured logging configuration for contract-build.

Library modules log through ``structlog.get_logger(__name__)`` with
snake_case event names. Applications call ``configure_logging`` once to
choose the level and renderer; logs go to stderr so that stdout stays
free for command output.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def configure_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """Configure structlog for command-line use.

    Args:
        verbose: Log at DEBUG instead of WARNING.
        json_logs: Render one JSON object per line instead of console output.

    Example:
        >>> configure_logging(verbose=True)
        >>> structlog.get_logger("contract_build").info("pipeline_started")
    """
    level = logging.DEBUG if verbose else logging.WARNING

    renderer: Any
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Resolve sys.stderr per logger so redirected streams are honoured
    return structlog.PrintLogger(file=sys.stderr)
