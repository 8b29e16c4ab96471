"""Logging setup using structlog.

- JSON lines for the engine/API, a human console renderer for CLI reports.
- Every logger carries a ``component`` field; per-asset context (symbol,
  regime) is bound through contextvars so concurrent asset tasks do not mix.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List

import structlog


def configure_logging(log_level: str = "INFO", *, json_logs: bool = True) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
        force=True,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str, **kwargs: Any) -> structlog.BoundLogger:
    """Lazy proxy; module-level loggers pick up configure_logging() on first use."""
    return structlog.get_logger(component=component, **kwargs)


@contextmanager
def asset_context(symbol: str, **kwargs: Any) -> Iterator[None]:
    """Bind symbol (and extra fields) to every log line emitted inside the block."""
    tokens = structlog.contextvars.bind_contextvars(symbol=symbol, **kwargs)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
