"""
Outbound HTTP with retries and circuit breaking.

Every call to a paid or flaky third-party API (AI gateway, Twilio, Resend,
Bill.com, ...) goes through fetch_with_retry():

- Rejects immediately with CircuitOpenError while the service's circuit is open
- Retries transport errors and non-2xx responses with exponential backoff
  (base_delay * 2**attempt)
- HTTP 429 waits for Retry-After when the server sends it, and gives up
  when the wait is longer than HTTP_MAX_RETRY_AFTER_SECONDS
- HTTP 402 is fatal: out of credits will not fix itself by retrying
- Records one breaker outcome per call (success, or failure after the last attempt)

Usage:
    response = await fetch_with_retry(
        "POST",
        "https://ai.gateway.example/v1/chat/completions",
        service_name="ai-gateway",
        json=payload,
        headers={"Authorization": f"Bearer {api_key}"},
    )
"""

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from propertyops.core.circuit_breaker import (
    CircuitBreakerStore,
    StaleCircuitStateError,
    get_circuit_breaker_store,
)
from propertyops.core.config import settings

logger = structlog.get_logger(__name__)

__all__ = [
    "FetchError",
    "UpstreamError",
    "RateLimitedError",
    "PaymentRequiredError",
    "CircuitOpenError",
    "fetch_with_retry",
    "parse_retry_after",
]

MAX_BODY_IN_ERROR = 500

# Breaker bookkeeping must never fail the call it is guarding
_BREAKER_ERRORS = (SQLAlchemyError, StaleCircuitStateError)


class FetchError(Exception):
    """Base class for outbound call failures."""

    def __init__(
        self,
        message: str,
        *,
        service_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.service_name = service_name
        self.status_code = status_code


class UpstreamError(FetchError):
    """Network failure, 5xx, or any other unusable response."""


class RateLimitedError(FetchError):
    """HTTP 429 that did not clear within the allowed attempts."""

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs: Any):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class PaymentRequiredError(FetchError):
    """HTTP 402: the account is out of credits. Never retried."""

    def __init__(self, message: str, **kwargs: Any):
        super().__init__(message, status_code=402, **kwargs)


class CircuitOpenError(FetchError):
    """The service's circuit is open; no request was sent."""


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds ("120") or an HTTP date. Returns None when the
    header is missing or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - now).total_seconds())


async def _can_proceed(breaker: CircuitBreakerStore, service_name: str) -> bool:
    try:
        status = await asyncio.to_thread(breaker.get_status, service_name)
    except _BREAKER_ERRORS as e:
        logger.warning("Circuit status unavailable, allowing call", service_name=service_name, error=str(e))
        return True
    return status.can_proceed


async def _record_success(breaker: CircuitBreakerStore, service_name: str) -> None:
    try:
        await asyncio.to_thread(breaker.record_success, service_name)
    except _BREAKER_ERRORS as e:
        logger.warning("Failed to record circuit success", service_name=service_name, error=str(e))


async def _record_failure(breaker: CircuitBreakerStore, service_name: str, error: Exception) -> None:
    try:
        await asyncio.to_thread(breaker.record_failure, service_name, str(error))
    except _BREAKER_ERRORS as e:
        logger.warning("Failed to record circuit failure", service_name=service_name, error=str(e))


async def fetch_with_retry(
    method: str,
    url: str,
    *,
    service_name: Optional[str] = None,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
    breaker: Optional[CircuitBreakerStore] = None,
    **request_kwargs: Any,
) -> httpx.Response:
    """
    Send an HTTP request, retrying with exponential backoff.

    Args:
        method: HTTP method
        url: Target URL
        service_name: Circuit breaker key; no breaker bookkeeping when None
        max_attempts: Total attempts (default HTTP_MAX_ATTEMPTS)
        base_delay: Backoff base in seconds (default HTTP_BASE_DELAY_SECONDS)
        client: Shared AsyncClient; a short-lived one is created when None
        breaker: Store to record outcomes in (default store when service_name is set)
        **request_kwargs: Passed to AsyncClient.request (json, headers, params, ...)

    Returns:
        The first 2xx response

    Raises:
        CircuitOpenError: circuit open, nothing sent
        PaymentRequiredError: HTTP 402
        RateLimitedError: still 429 on the last attempt, or asked to wait too long
        UpstreamError: anything else that failed on the last attempt
    """
    attempts = max(1, settings.HTTP_MAX_ATTEMPTS if max_attempts is None else max_attempts)
    delay_base = settings.HTTP_BASE_DELAY_SECONDS if base_delay is None else base_delay

    if service_name and breaker is None:
        breaker = get_circuit_breaker_store()

    if service_name and breaker is not None:
        if not await _can_proceed(breaker, service_name):
            logger.warning("Circuit open, call rejected", service_name=service_name, url=url)
            raise CircuitOpenError(f"Circuit open for {service_name}", service_name=service_name)

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    last_error: Optional[FetchError] = None

    try:
        for attempt in range(attempts):
            delay = delay_base * (2**attempt)

            try:
                response = await http.request(method, url, **request_kwargs)
            except httpx.HTTPError as e:
                last_error = UpstreamError(
                    f"{method} {url} failed: {e}",
                    service_name=service_name,
                )
                logger.warning(
                    "HTTP attempt failed",
                    service_name=service_name,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(e),
                )
            else:
                if response.is_success:
                    if service_name and breaker is not None:
                        await _record_success(breaker, service_name)
                    return response

                if response.status_code == 402:
                    error = PaymentRequiredError(
                        f"{method} {url} returned 402: credits depleted",
                        service_name=service_name,
                    )
                    logger.error("Payment required, not retrying", service_name=service_name, url=url)
                    if service_name and breaker is not None:
                        await _record_failure(breaker, service_name, error)
                    raise error

                if response.status_code == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))
                    if retry_after is not None:
                        delay = retry_after
                    last_error = RateLimitedError(
                        f"{method} {url} rate limited",
                        retry_after=retry_after,
                        service_name=service_name,
                    )
                    logger.info(
                        "Rate limited",
                        service_name=service_name,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        wait_seconds=delay,
                    )
                    if retry_after is not None and retry_after > settings.HTTP_MAX_RETRY_AFTER_SECONDS:
                        logger.warning(
                            "Retry-After too long, giving up",
                            service_name=service_name,
                            retry_after=retry_after,
                            max_retry_after=settings.HTTP_MAX_RETRY_AFTER_SECONDS,
                        )
                        break
                else:
                    last_error = UpstreamError(
                        f"{method} {url} returned {response.status_code}: {response.text[:MAX_BODY_IN_ERROR]}",
                        service_name=service_name,
                        status_code=response.status_code,
                    )
                    logger.warning(
                        "HTTP attempt failed",
                        service_name=service_name,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        status_code=response.status_code,
                    )

            if attempt < attempts - 1:
                await asyncio.sleep(delay)
    finally:
        if owns_client:
            await http.aclose()

    if last_error is None:
        raise RuntimeError("Unexpected state in fetch_with_retry")
    if service_name and breaker is not None:
        await _record_failure(breaker, service_name, last_error)
    logger.error(
        "HTTP call failed after retries",
        service_name=service_name,
        url=url,
        attempts=attempts,
        error=str(last_error),
    )
    raise last_error
