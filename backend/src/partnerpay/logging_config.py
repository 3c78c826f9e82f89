"""Logging configuration."""

import logging
import sys

import structlog

from partnerpay.settings import settings

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "stripe", "uvicorn.access", "httpx")


def _add_service(logger, method_name: str, event_dict: dict) -> dict:
    """Tag every event with the service and environment."""
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.env)
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Configure structlog and route stdlib logging to stdout.

    Args:
        level: Override for ``settings.log_level``
    """
    level_name = (level or settings.log_level).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service,
    ]
    if settings.log_format == "json":
        processors = shared + [
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared + [
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
