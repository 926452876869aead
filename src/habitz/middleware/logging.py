"""structlog setup for the API process."""

import logging

import structlog
from structlog.types import EventDict, WrappedLogger

from habitz.config import Settings

# Chatty libraries that only log at INFO when debugging
_QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx")


def _stamp_service(settings: Settings) -> structlog.types.Processor:
    def processor(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", "habitz-api")
        event_dict.setdefault("version", settings.app_version)
        return event_dict

    return processor


def setup_logging(settings: Settings) -> None:
    """Configure structlog; ``log_format`` picks JSON lines or the dev console renderer."""
    if settings.log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _stamp_service(settings),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    if not settings.debug:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))
