"""
Dereferencing of Linked Data resources

Fetches the RDF description of a resource by requesting its IRI with RDF
content negotiation and returns it as N-Triples, the format the file store
keeps. Responses that already are N-Triples are passed through; Turtle,
JSON-LD, RDF/XML and N3 are converted with rdflib.

**Failure classification:**

- 404 and 410 raise :class:`~GraphIngest.errors.ResourceNotFoundError`; the
  storer treats that as an authoritative delete
- 429/5xx and transport errors are retried inside the request (see
  :mod:`GraphIngest.network.retry`) and raise
  :class:`~GraphIngest.errors.FetchError` once the retry budget is spent
- other error statuses and unparsable bodies raise ``FetchError``
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Union

import httpx
from rdflib import Graph

from .config.models import CredentialsConfig, HttpClientConfig
from .errors import FetchError, ResourceNotFoundError
from .network.client import basic_auth, create_http_client
from .network.retry import request_with_retry
from .storer.batch import PartialContent

__all__ = ["Dereferencer", "to_ntriples", "RDF_FORMATS", "NOT_FOUND_STATUSES"]

_LOGGER = logging.getLogger(__name__)

NOT_FOUND_STATUSES = frozenset({404, 410})

RDF_FORMATS: Dict[str, str] = {
    "application/n-triples": "nt",
    "text/plain": "nt",
    "text/turtle": "turtle",
    "application/x-turtle": "turtle",
    "application/ld+json": "json-ld",
    "application/json": "json-ld",
    "application/rdf+xml": "xml",
    "text/n3": "n3",
}


def _media_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def to_ntriples(content: bytes, content_type: Optional[str], base_iri: str) -> bytes:
    """Convert an RDF document to N-Triples.

    Raises:
        FetchError: If the media type is not an RDF serialization or the body
            cannot be parsed
    """
    media_type = _media_type(content_type)
    rdf_format = RDF_FORMATS.get(media_type)
    if rdf_format is None:
        raise FetchError(
            f'Unsupported content type "{media_type}" for "{base_iri}"',
            iri=base_iri,
            retryable=False,
        )
    if rdf_format == "nt":
        return content

    graph = Graph()
    try:
        graph.parse(data=content, format=rdf_format, publicID=base_iri)
    except Exception as e:
        raise FetchError(
            f'Cannot parse {media_type} response for "{base_iri}": {e}',
            iri=base_iri,
            retryable=False,
        ) from e
    return graph.serialize(format="nt", encoding="utf-8")


class Dereferencer:
    """Fetch function for the batch storer that retrieves one resource per request."""

    def __init__(
        self,
        *,
        http_config: Optional[HttpClientConfig] = None,
        credentials: Optional[CredentialsConfig] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.http_config = http_config or HttpClientConfig()
        self.logger = logger or _LOGGER
        self._auth = basic_auth(credentials)
        self._headers = {"Accept": self.http_config.accept, **self.http_config.headers}
        self._headers.update(headers or {})
        self._owns_client = client is None
        self._client = client or create_http_client(self.http_config)

    def get_resource(self, iri: str) -> bytes:
        """Return the N-Triples description of ``iri``."""
        try:
            response = request_with_retry(
                self._client,
                "GET",
                iri,
                retry=self.http_config.retry,
                auth=self._auth,
                headers=self._headers,
            )
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f'Failed to dereference "{iri}": status {e.response.status_code}',
                iri=iri,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f'Failed to dereference "{iri}": {e}', iri=iri) from e

        if response.status_code in NOT_FOUND_STATUSES:
            raise ResourceNotFoundError(
                f'Resource "{iri}" does not exist (status {response.status_code})',
                iri=iri,
                status_code=response.status_code,
            )
        if response.is_error:
            raise FetchError(
                f'Failed to dereference "{iri}": status {response.status_code}',
                iri=iri,
                status_code=response.status_code,
                retryable=False,
            )

        return to_ntriples(response.content, response.headers.get("Content-Type"), iri)

    def __call__(self, iris: Sequence[str]) -> Union[bytes, PartialContent]:
        """Fetch each IRI in turn and concatenate the N-Triples.

        A group is only reported as not found when every member is. When some
        members are gone the content of the others comes back as
        :class:`PartialContent` naming the missing ones.
        """
        if len(iris) == 1:
            return self.get_resource(iris[0])

        chunks = []
        missing = set()
        for iri in iris:
            try:
                chunks.append(self.get_resource(iri))
            except ResourceNotFoundError:
                missing.add(iri)
        if len(missing) == len(iris):
            raise ResourceNotFoundError(f"None of {len(iris)} resources exist")
        content = b"".join(
            chunk if chunk.endswith(b"\n") else chunk + b"\n" for chunk in chunks if chunk
        )
        if missing:
            return PartialContent(content=content, missing_iris=frozenset(missing))
        return content

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "Dereferencer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
