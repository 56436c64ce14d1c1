"""HTTP client factory and retry policies."""

from __future__ import annotations

from .client import basic_auth, create_http_client
from .retry import RETRYABLE_STATUSES, create_http_retry_policy, request_with_retry

__all__ = [
    "RETRYABLE_STATUSES",
    "basic_auth",
    "create_http_client",
    "create_http_retry_policy",
    "request_with_retry",
]
