"""Exception hierarchy shared across discovery, queueing, and storage.

The ingestion engine spans configuration parsing, activity stream traversal,
HTTP retrieval, and local persistence.  This module groups the failure modes
into a small hierarchy so caller code can react to high-level categories (for
example, an authoritative "resource is gone" answer vs. a transient fetch
failure) while still having access to the details attached to each subclass.

SQLite failures are not wrapped: ``sqlite3.Error`` propagates unchanged from
the datastore layer.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "GraphIngestError",
    "ConfigurationError",
    "RetryLimitExceededError",
    "FetchError",
    "ResourceNotFoundError",
    "ChangeDiscoveryError",
    "PublishError",
]


class GraphIngestError(RuntimeError):
    """Base exception for ingestion failures."""


class ConfigurationError(GraphIngestError):
    """Raised when settings or run options are invalid."""


class RetryLimitExceededError(GraphIngestError):
    """Raised when a queue item has exhausted its retry budget.

    The item has already been removed from the queue when this is raised.
    """

    def __init__(self, iri: str, max_retry_count: int) -> None:
        super().__init__(f'Cannot retry "{iri}": max retry count of {max_retry_count} reached')
        self.iri = iri
        self.max_retry_count = max_retry_count


class FetchError(GraphIngestError):
    """Raised when a resource (or group of resources) cannot be fetched."""

    def __init__(
        self,
        message: str,
        *,
        iri: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.iri = iri
        self.status_code = status_code
        self.retryable = retryable


class ResourceNotFoundError(FetchError):
    """Raised when the remote side authoritatively reports a resource as gone (404/410)."""

    def __init__(self, message: str, *, iri: Optional[str] = None, status_code: int = 404) -> None:
        super().__init__(message, iri=iri, status_code=status_code, retryable=False)


class ChangeDiscoveryError(GraphIngestError):
    """Raised when a collection or page of an activity stream is malformed."""

    def __init__(self, message: str, *, iri: Optional[str] = None) -> None:
        super().__init__(message)
        self.iri = iri


class PublishError(GraphIngestError):
    """Raised when publishing the stored resources fails."""
