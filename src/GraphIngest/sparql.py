"""SPARQL-backed fetching and change checking.

:class:`SparqlFetcher` fetches a whole group of resources with one CONSTRUCT
query: the ``?_iris`` placeholder in the configured query is replaced with the
group's IRIs (``<iri1> <iri2> ...``), typically inside a ``VALUES`` block.

:class:`SparqlChangeChecker` answers "has the dataset changed since the
marker of the last run?" by running a SELECT query that binds a single
``?identifier`` (for example a dataset's modification date or revision).
"""

from __future__ import annotations

import logging
import re
from typing import NamedTuple, Optional, Sequence

import httpx

from .config.models import HttpClientConfig, SparqlConfig
from .dereference import to_ntriples
from .errors import FetchError, ResourceNotFoundError
from .network.client import create_http_client
from .network.retry import request_with_retry

__all__ = ["ChangeCheckResult", "SparqlFetcher", "SparqlChangeChecker", "format_iris"]

_LOGGER = logging.getLogger(__name__)

_FORBIDDEN_IRI_CHARS = re.compile(r'[\s<>"{}|^`\\]')


class ChangeCheckResult(NamedTuple):
    is_changed: bool
    identifier: Optional[str]


def format_iris(iris: Sequence[str]) -> str:
    """Render IRIs as SPARQL IRI references; rejects characters IRIs cannot contain."""
    for iri in iris:
        if not iri or _FORBIDDEN_IRI_CHARS.search(iri):
            raise ValueError(f"Invalid IRI: {iri!r}")
    return " ".join(f"<{iri}>" for iri in iris)


class _SparqlClient:
    def __init__(
        self,
        config: SparqlConfig,
        http_config: Optional[HttpClientConfig],
        client: Optional[httpx.Client],
        logger: Optional[logging.Logger],
    ) -> None:
        self.config = config
        self.http_config = http_config or HttpClientConfig()
        self.logger = logger or _LOGGER
        self._owns_client = client is None
        self._client = client or create_http_client(self.http_config)

    def _post(self, query: str, accept: str) -> httpx.Response:
        try:
            response = request_with_retry(
                self._client,
                "POST",
                self.config.endpoint_url,
                retry=self.http_config.retry,
                data={"query": query},
                headers={"Accept": accept},
                timeout=self.config.timeout_s,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"SPARQL endpoint {self.config.endpoint_url} returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"SPARQL endpoint {self.config.endpoint_url} failed: {e}") from e
        return response

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


class SparqlFetcher(_SparqlClient):
    """Fetch function for the batch storer that retrieves a group per CONSTRUCT query."""

    def __init__(
        self,
        config: SparqlConfig,
        *,
        http_config: Optional[HttpClientConfig] = None,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(config, http_config, client, logger)

    def build_query(self, iris: Sequence[str]) -> str:
        return self.config.query.replace("?_iris", format_iris(iris))

    def __call__(self, iris: Sequence[str]) -> bytes:
        """Return the N-Triples the query constructs for ``iris``.

        An empty result means none of the resources exist anymore.
        """
        try:
            query = self.build_query(iris)
        except ValueError as e:
            raise FetchError(str(e), retryable=False) from e

        response = self._post(query, accept="application/n-triples, text/turtle;q=0.9")
        content = to_ntriples(
            response.content, response.headers.get("Content-Type"), self.config.endpoint_url
        )
        if not content.strip():
            raise ResourceNotFoundError(f"No triples found for {len(iris)} resources")
        return content


class SparqlChangeChecker(_SparqlClient):
    """Compares the freshness marker of a dataset with the one of the last run."""

    def __init__(
        self,
        config: SparqlConfig,
        *,
        http_config: Optional[HttpClientConfig] = None,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not config.change_query:
            raise ValueError("SparqlConfig.change_query is required for change checks")
        super().__init__(config, http_config, client, logger)

    def __call__(self, current_identifier: Optional[str]) -> ChangeCheckResult:
        response = self._post(
            self.config.change_query or "", accept="application/sparql-results+json"
        )
        try:
            bindings = response.json()["results"]["bindings"]
        except (ValueError, KeyError, TypeError) as e:
            raise FetchError(f"Unexpected SPARQL results: {e}", retryable=False) from e

        identifier: Optional[str] = None
        if bindings and "identifier" in bindings[0]:
            identifier = bindings[0]["identifier"]["value"]

        # Without a marker there is nothing to compare; assume a change
        is_changed = identifier is None or identifier != current_identifier
        self.logger.info(
            f"Change check: last identifier {current_identifier!r}, "
            f"current identifier {identifier!r}"
        )
        return ChangeCheckResult(is_changed=is_changed, identifier=identifier)
