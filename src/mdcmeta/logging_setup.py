"""structlog configuration. Logs go to stderr; stdout belongs to the host."""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mdcmeta.config import LoggingSettings


def configure_logging(settings: LoggingSettings, *, debug: bool = False) -> None:
    """Apply level and renderer. ``debug`` forces DEBUG regardless of ``settings.level``."""
    level = logging.DEBUG if debug else logging.getLevelNamesMapping()[settings.level]
    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )
