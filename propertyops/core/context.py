"""
Correlation context for logs and error reports.

Work runs either inside an HTTP request or inside a scheduled job. Whichever
it is, the identifier is kept in a ContextVar so it follows the work into
awaited coroutines and `asyncio.to_thread` calls.
"""

from contextvars import ContextVar
from dataclasses import asdict, dataclass
from typing import Optional
import uuid

__all__ = [
    "OpsContext",
    "new_request_id",
    "begin_request",
    "begin_job",
    "current_context",
    "get_request_id",
    "reset_context",
    "context_fields",
]


@dataclass(frozen=True)
class OpsContext:
    request_id: Optional[str] = None
    job: Optional[str] = None


_EMPTY = OpsContext()
_current: ContextVar[OpsContext] = ContextVar("ops_context", default=_EMPTY)


def new_request_id() -> str:
    """req_ followed by 16 hex chars."""
    return f"req_{uuid.uuid4().hex[:16]}"


def begin_request(request_id: str) -> OpsContext:
    ctx = OpsContext(request_id=request_id)
    _current.set(ctx)
    return ctx


def begin_job(job: str) -> OpsContext:
    """Scheduled jobs get their own run id so one run's log lines group together."""
    ctx = OpsContext(request_id=f"job_{uuid.uuid4().hex[:16]}", job=job)
    _current.set(ctx)
    return ctx


def current_context() -> OpsContext:
    return _current.get()


def get_request_id() -> Optional[str]:
    return _current.get().request_id


def reset_context() -> None:
    _current.set(_EMPTY)


def context_fields() -> dict:
    """Non-empty context values, for enriching log events and Sentry extras."""
    return {k: v for k, v in asdict(_current.get()).items() if v is not None}
