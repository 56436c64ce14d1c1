"""Network retry policies: Tenacity-based backoff for resilient HTTP.

Transient failures are retried within a single request before they surface
to the caller:
- Connection errors and timeouts
- Rate-limiting (429, with Retry-After support)
- Server errors (5xx, with exponential backoff)

Any other status is returned to the caller untouched, so 404/410 reach the
dereferencer as an authoritative answer rather than being retried.

Example:
    >>> import httpx
    >>> from GraphIngest.network.retry import request_with_retry
    >>> with httpx.Client() as client:
    ...     response = request_with_retry(client, "GET", "https://example.org/resource")
"""

from __future__ import annotations

import email.utils
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from ..config.models import RetryPolicy

__all__ = ["RETRYABLE_STATUSES", "create_http_retry_policy", "request_with_retry"]

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

_TRANSIENT_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.RemoteProtocolError,
)


def _parse_retry_after_value(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None

    try:
        delay = float(int(value))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()

    return max(0.0, delay)


class _RetryAfterOrBackoff(wait_base):
    """Wait strategy that honours Retry-After before falling back to backoff."""

    def __init__(self, fallback_wait: wait_base, max_delay_seconds: int) -> None:
        self._fallback_wait = fallback_wait
        self._max_delay_seconds = max_delay_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        response = getattr(exc, "response", None) if exc is not None else None
        if isinstance(response, httpx.Response):
            delay = _parse_retry_after_value(response.headers.get("Retry-After"))
            if delay is not None:
                return min(delay, float(self._max_delay_seconds))
        return float(self._fallback_wait(retry_state))


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, _TRANSIENT_EXCEPTIONS):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and (
        exc.response.status_code in RETRYABLE_STATUSES
    )


def create_http_retry_policy(
    max_attempts: int = 3,
    max_delay_seconds: int = 30,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Create Tenacity retry policy for HTTP requests.

    Stops after ``max_attempts`` or once ``max_delay_seconds`` have elapsed
    since the first attempt, whichever comes first, and re-raises the last
    exception instead of wrapping it in ``RetryError``.
    """
    wait_strategy = _RetryAfterOrBackoff(
        fallback_wait=wait_random_exponential(multiplier=0.5, max=max(1, max_delay_seconds)),
        max_delay_seconds=max_delay_seconds,
    )

    return Retrying(
        stop=stop_after_attempt(max_attempts) | stop_after_delay(max_delay_seconds),
        wait=wait_strategy,
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    retry: Optional[RetryPolicy] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient failures according to ``retry``.

    Raises:
        httpx.HTTPStatusError: If the last attempt still returned 429/5xx
        httpx.TransportError: If the last attempt failed at transport level
    """
    policy_config = retry or RetryPolicy()
    policy = create_http_retry_policy(
        max_attempts=policy_config.max_attempts,
        max_delay_seconds=policy_config.max_delay_seconds,
        sleep=sleep,
    )

    response: Optional[httpx.Response] = None
    for attempt in policy:
        with attempt:
            response = client.request(method, url, **kwargs)
            if response.status_code in RETRYABLE_STATUSES:
                response.raise_for_status()
    assert response is not None
    return response
