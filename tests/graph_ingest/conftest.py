"""Shared fixtures for the GraphIngest test-suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional

import httpx
import pytest

from GraphIngest.datastore import Connection, Queue, Registry, Runs
from GraphIngest.filestore import Filestore

Route = Callable[[httpx.Request], httpx.Response]
ClientFactory = Callable[..., httpx.Client]


@pytest.fixture
def connection(tmp_path: Path) -> Iterator[Connection]:
    conn = Connection(tmp_path / "state" / "graphingest.sqlite")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def queue(connection: Connection) -> Queue:
    return Queue(connection)


@pytest.fixture
def registry(connection: Connection) -> Registry:
    return Registry(connection)


@pytest.fixture
def runs(connection: Connection) -> Runs:
    return Runs(connection)


@pytest.fixture
def filestore(tmp_path: Path) -> Filestore:
    return Filestore(tmp_path / "resources")


@pytest.fixture
def mock_client() -> Iterator[ClientFactory]:
    """Factory for an ``httpx.Client`` backed by ``httpx.MockTransport``.

    ``documents`` maps URLs to JSON bodies answered with 200; ``routes`` maps
    URLs to handlers. Unknown URLs answer 404. Every request is recorded on
    ``client.requests``.
    """
    clients: list[httpx.Client] = []

    def factory(
        documents: Optional[Mapping[str, Any]] = None,
        routes: Optional[Mapping[str, Route]] = None,
    ) -> httpx.Client:
        requests: list[httpx.Request] = []
        documents = dict(documents or {})
        routes = dict(routes or {})

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            url = str(request.url)
            if url in routes:
                return routes[url](request)
            if url in documents:
                return httpx.Response(200, json=documents[url])
            return httpx.Response(404, text="not found")

        client = httpx.Client(transport=httpx.MockTransport(handler))
        client.requests = requests  # type: ignore[attr-defined]
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()
