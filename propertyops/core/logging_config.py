"""
structlog setup shared by the API, the scheduler worker and scripts.

Production writes one JSON object per line for the log drain; everywhere else
gets the console renderer (uncolored under pytest so captured output stays
readable).

Usage:
    from propertyops.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Vendor assigned", vendor_id="v_123", category="plumbing")
"""

import logging
import sys
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

from propertyops.core.config import settings

IS_PRODUCTION = settings.ENVIRONMENT == "production"
IS_TEST = "pytest" in sys.modules

# Libraries that log every request/job at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler", "sqlalchemy.engine")


def add_environment(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag events with the deployment so staging and production logs can share a drain."""
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def _renderers() -> list[Any]:
    if IS_PRODUCTION:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=not IS_TEST)]


def configure_logging() -> None:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if IS_PRODUCTION:
        processors.append(add_environment)

    structlog.configure(
        processors=processors + _renderers(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Stdlib loggers (ours and third-party) print plain messages to stdout
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


configure_logging()
