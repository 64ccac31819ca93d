"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog

from clip_studio.config import settings


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and route stdlib logging through it.

    ``level`` overrides ``settings.log_level``; the CLI uses it for ``--verbose``.
    """
    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # Applied to structlog and stdlib records alike, so video/clip context
    # bound with bind_workflow_context shows up on adapter logs too
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stderr, so tables printed by the CLI on stdout stay clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel((level or settings.log_level).upper())

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def bind_workflow_context(video_id: str | None = None, clip_id: str | None = None) -> None:
    """Replace the video/clip ids attached to every log line in this context."""
    structlog.contextvars.unbind_contextvars("video_id", "clip_id")
    context = {k: v for k, v in (("video_id", video_id), ("clip_id", clip_id)) if v}
    if context:
        structlog.contextvars.bind_contextvars(**context)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance for a module."""
    return structlog.get_logger(name)
