"""
Error reporting: structlog always, Sentry when SENTRY_DSN is set.

Usage:
    capture_exception(exc, context={"schedule_id": "..."})

    capture_message("Circuit opened", level="warning", context={"service_name": "twilio"})

    with ErrorHandler("generate_task", context={"schedule_id": schedule.id}) as handler:
        create_task(...)
    if handler.failed:
        ...
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import structlog

from propertyops.core.context import context_fields, get_request_id

logger = structlog.get_logger(__name__)

__all__ = [
    "init_sentry",
    "capture_exception",
    "capture_message",
    "ErrorHandler",
    "is_sentry_enabled",
]

# URL fragments whose errors are never worth an alert
_IGNORED_PATHS = ("/health",)

_sentry_initialized: bool = False


def init_sentry(dsn: str, environment: str = "production", traces_sample_rate: float = 0.1) -> bool:
    """
    Initialize the Sentry SDK. Returns False (and keeps running) when the DSN
    is empty or the SDK refuses to start.
    """
    global _sentry_initialized

    if not dsn:
        logger.info("Sentry disabled (no DSN provided)")
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            before_send=_before_send,
        )
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))
        return False

    _sentry_initialized = True
    logger.info("Sentry initialized", environment=environment)
    return True


def _before_send(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    url = event.get("request", {}).get("url", "")
    if any(path in url for path in _IGNORED_PATHS):
        return None

    request_id = get_request_id()
    if request_id:
        event.setdefault("tags", {})["request_id"] = request_id
    return event


def is_sentry_enabled() -> bool:
    return _sentry_initialized


def _send(
    send: Callable[[Any], Optional[str]],
    extras: Dict[str, Any],
    level: str,
    fingerprint: Optional[List[str]] = None,
) -> Optional[str]:
    """Run a sentry_sdk capture call inside a scope carrying our extras."""
    if not _sentry_initialized:
        return None
    try:
        import sentry_sdk

        with sentry_sdk.new_scope() as scope:
            for key, value in extras.items():
                if value is not None:
                    scope.set_extra(key, value)
            if fingerprint:
                scope.fingerprint = fingerprint
            scope.set_level(level)
            return send(sentry_sdk)
    except Exception as e:
        logger.warning("Failed to send event to Sentry", error=str(e))
        return None


def capture_exception(
    exc: BaseException,
    context: Optional[Dict[str, Any]] = None,
    level: str = "error",
    fingerprint: Optional[List[str]] = None,
) -> Optional[str]:
    """Log `exc` with the current context and forward it to Sentry. Returns the event id."""
    extras = {**context_fields(), "error_type": type(exc).__name__, **(context or {})}
    logger.error("Exception captured", exc_info=exc, **extras)

    return _send(lambda sdk: sdk.capture_exception(exc), extras, level, fingerprint)


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """For notable events that are not exceptions, e.g. a circuit opening."""
    extras = {**context_fields(), **(context or {})}
    getattr(logger, level, logger.info)(message, **extras)

    return _send(lambda sdk: sdk.capture_message(message, level=level), extras, level)


class ErrorHandler:
    """
    Captures and suppresses exceptions raised inside the block.

    Batch jobs wrap each item so one bad record is reported and counted
    (`handler.failed`) without stopping the run. `reraise=True` reports and
    then propagates. BaseExceptions such as KeyboardInterrupt always propagate.
    """

    def __init__(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        capture: bool = True,
        reraise: bool = False,
    ):
        self.operation = operation
        self.context = context or {}
        self.capture = capture
        self.reraise = reraise
        self.event_id: Optional[str] = None
        self.failed = False

    def __enter__(self) -> "ErrorHandler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_val is None or not isinstance(exc_val, Exception):
            return False

        self.failed = True
        if self.capture:
            self.event_id = capture_exception(
                exc_val,
                context={"operation": self.operation, **self.context},
                fingerprint=[self.operation, type(exc_val).__name__],
            )
        else:
            logger.warning(f"{self.operation} failed", error=str(exc_val), **self.context)

        return not self.reraise
