"""HTTPX client factory shared by discovery, dereferencing and SPARQL fetching."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config.models import CredentialsConfig, HttpClientConfig

__all__ = ["create_http_client", "basic_auth"]

logger = logging.getLogger(__name__)


def basic_auth(credentials: Optional[CredentialsConfig]) -> Optional[httpx.BasicAuth]:
    """Return an ``httpx`` Basic auth object, or ``None`` without credentials."""
    if credentials is None:
        return None
    return httpx.BasicAuth(credentials.username, credentials.password)


def create_http_client(
    config: Optional[HttpClientConfig] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build an ``httpx.Client`` with timeouts, User-Agent and redirects configured.

    Credentials are not bound to the client; callers pass ``auth=`` per
    request so one client can serve endpoints with different credentials.
    The caller owns the client and must close it.
    """
    config = config or HttpClientConfig()
    client = httpx.Client(
        timeout=httpx.Timeout(config.timeout_s),
        headers={"User-Agent": config.user_agent},
        follow_redirects=True,
        transport=transport,
    )
    logger.debug(f"HTTP client created (timeout={config.timeout_s}s)")
    return client
