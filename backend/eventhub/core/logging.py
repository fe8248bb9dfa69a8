"""
structlog setup for the API process and its background workers.

Every line carries the service name, version and environment, plus whatever
the request middleware bound into contextvars (request_id, user_id). The
scheduler and the notification worker get their own levels so a chatty sweep
can be turned down without muting the API.
"""

import logging
import sys
from typing import Optional

import structlog

from eventhub.core.config import Settings, get_settings

SCHEDULER_LOGGER = "eventhub.services.scheduler"
NOTIFICATION_LOGGER = "eventhub.services.notification_service"

QUIET_LOGGERS = ("uvicorn.access", "aiosqlite")


def _level(name: str, fallback: int = logging.INFO) -> int:
    return getattr(logging, name.upper(), fallback) if name else fallback


def add_service_context(settings: Settings):
    """Processor stamping static deployment facts on every event."""
    context = {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "env": settings.ENVIRONMENT,
    }

    def processor(logger, method_name, event_dict):
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return processor


def build_processors(settings: Settings) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        add_service_context(settings),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.ENVIRONMENT == "production":
        processors.append(structlog.processors.format_exc_info)
    return processors


def setup_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    production = settings.ENVIRONMENT == "production"

    structlog.configure(
        processors=[
            *build_processors(settings),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer()
                if production
                else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
            ]
        )
    )

    base_level = _level(settings.LOG_LEVEL)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(base_level)

    logging.getLogger(SCHEDULER_LOGGER).setLevel(_level(settings.SCHEDULER_LOG_LEVEL, base_level))
    logging.getLogger(NOTIFICATION_LOGGER).setLevel(
        _level(settings.NOTIFICATION_LOG_LEVEL, base_level)
    )
    logging.getLogger("sqlalchemy.engine").setLevel(_level(settings.SQL_LOG_LEVEL, logging.WARNING))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
