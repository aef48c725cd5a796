"""Structured logging for daytrace.

structlog renders on top of the stdlib ``logging`` module: console output by
default, JSON lines when ``json_output`` is set or ``DAYTRACE_LOG_FORMAT=json``.

Components take an optional ``logger`` argument and fall back to
``get_logger(__name__)``; the matching predicates never log.
"""

import logging
import os
import sys
from typing import List, Optional

import structlog


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Log level name. Defaults to ``DAYTRACE_LOG_LEVEL`` or INFO.
        json_output: Render JSON lines instead of the console format.
    """
    if level is None:
        level = os.environ.get("DAYTRACE_LOG_LEVEL", "INFO")

    if json_output is None:
        json_output = os.environ.get("DAYTRACE_LOG_FORMAT", "").lower() == "json"

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


__all__ = ["get_logger", "setup_logging"]
