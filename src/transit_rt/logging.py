"""Structured logging for the feed service.

Events carry the request context bound by the HTTP middleware and, while a
feed message is processed, the ``source_id`` and ``ingest_id`` of that
message, so decoder, validator and merge events of one ingest line up.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import Processor

from transit_rt.config import Settings, get_settings

# Service loggers whose level has its own setting
SERVICE_LOGGERS = {
    "transit_rt.services.gtfs_rt": "decoder_log_level",
    "transit_rt.services.validation": "validation_log_level",
    "transit_rt.services.merge": "merge_log_level",
}


def _renderer(settings: Settings) -> Processor:
    log_format = settings.log_format
    if log_format == "auto":
        log_format = "console" if settings.environment == "development" else "json"
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def service_log_level(settings: Settings, logger_name: str) -> str:
    """Level for one of ``SERVICE_LOGGERS``; unset levels follow ``log_level``."""
    level = getattr(settings, SERVICE_LOGGERS[logger_name])
    if level:
        return level.upper()
    if settings.debug and logger_name == "transit_rt.services.validation":
        return "DEBUG"
    return settings.log_level.upper()


def setup_logging() -> None:
    """Route structlog and stdlib logging through one stdout handler."""
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    renderer = _renderer(settings)
    if isinstance(renderer, structlog.processors.JSONRenderer):
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    for name in SERVICE_LOGGERS:
        logging.getLogger(name).setLevel(service_log_level(settings, name))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.stdlib.get_logger(name)


def bind_request_context(**kwargs: Any) -> None:
    """Bind context variables for the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_request_context() -> None:
    """Clear context variables after request completion."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def bound_ingest_context(source_id: str, ingest_id: str) -> Iterator[None]:
    """Tag every event logged inside the block with the feed message it belongs to."""
    with structlog.contextvars.bound_contextvars(source_id=source_id, ingest_id=ingest_id):
        yield
