"""Tests for the batch storer."""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Sequence

import pytest

from GraphIngest.datastore import Connection, Queue, Registry
from GraphIngest.errors import ConfigurationError, ResourceNotFoundError
from GraphIngest.filestore import Filestore
from GraphIngest.storer import (
    BatchStorer,
    PartialContent,
    StorerRunOptions,
    group_id,
    to_chunks,
)


def ntriples(iris: Sequence[str]) -> bytes:
    return b"".join(
        f'<{iri}> <http://schema.org/name> "name" .\n'.encode("utf-8") for iri in iris
    )


class RecordingFetch:
    """Fetch function that records the groups it was asked for."""

    def __init__(self, missing: Sequence[str] = (), failing: Sequence[str] = ()) -> None:
        self.missing = set(missing)
        self.failing = set(failing)
        self.calls: List[List[str]] = []
        self._lock = threading.Lock()

    def __call__(self, iris: Sequence[str]) -> bytes:
        with self._lock:
            self.calls.append(list(iris))
        if self.missing.intersection(iris):
            raise ResourceNotFoundError(f"{iris} not found")
        if self.failing.intersection(iris):
            raise RuntimeError("Ouch!")
        return ntriples(iris)


class RecordingListener:
    def __init__(self) -> None:
        self.progress: List[tuple] = []

    def processed_resource(self, total: int, processed: int) -> None:
        self.progress.append((total, processed))


def test_to_chunks() -> None:
    assert to_chunks([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert to_chunks([], 3) == []
    with pytest.raises(ValueError):
        to_chunks([1], 0)


def test_stores_and_promotes(queue: Queue, registry: Registry, filestore: Filestore) -> None:
    for n in range(3):
        queue.push(f"http://localhost/{n}", action="create", type="objects")
    fetch = RecordingFetch()
    listener = RecordingListener()

    result = BatchStorer(filestore, fetch, listener=listener).run(
        queue, StorerRunOptions(type="objects")
    )

    assert queue.size() == 0
    assert sorted(item.iri for item in registry.get_all("objects")) == [
        f"http://localhost/{n}" for n in range(3)
    ]
    for n in range(3):
        path = filestore.create_path_from_id(f"http://localhost/{n}")
        assert path.read_bytes() == ntriples([f"http://localhost/{n}"])
    assert result.saved == 3
    assert result.processed == 3
    assert listener.progress == [(3, 1), (3, 2), (3, 3)]


def test_delete_actions_are_not_fetched(
    queue: Queue, registry: Registry, filestore: Filestore
) -> None:
    filestore.save("http://localhost/1", ntriples(["http://localhost/1"]))
    registry.save("http://localhost/1")
    queue.push("http://localhost/1", action="delete")
    fetch = RecordingFetch()

    result = BatchStorer(filestore, fetch).run(queue)

    assert fetch.calls == []
    assert not filestore.create_path_from_id("http://localhost/1").exists()
    assert registry.get("http://localhost/1") is None
    assert queue.size() == 0
    assert result.removed == 1


def test_not_found_is_handled_like_delete(
    queue: Queue, registry: Registry, filestore: Filestore
) -> None:
    filestore.save("http://localhost/gone", ntriples(["http://localhost/gone"]))
    registry.save("http://localhost/gone")
    queue.push("http://localhost/gone", action="update")

    result = BatchStorer(filestore, RecordingFetch(missing=["http://localhost/gone"])).run(queue)

    assert not filestore.create_path_from_id("http://localhost/gone").exists()
    assert registry.get("http://localhost/gone") is None
    assert queue.size() == 0
    assert result.removed == 1


def test_failures_are_retried_until_the_limit(
    connection: Connection, registry: Registry, filestore: Filestore
) -> None:
    queue = Queue(connection, max_retry_count=2)
    queue.push("http://localhost/bad", action="create")
    queue.push("http://localhost/good", action="create")
    fetch = RecordingFetch(failing=["http://localhost/bad"])
    storer = BatchStorer(filestore, fetch)

    first = storer.run(queue)
    assert first.retried == 1
    assert [(item.iri, item.retry_count) for item in queue.get_all()] == [
        ("http://localhost/bad", 1)
    ]
    assert registry.get("http://localhost/good") is not None

    storer.run(queue)
    last = storer.run(queue)

    assert last.abandoned == 1
    assert last.abandoned_iris == ["http://localhost/bad"]
    assert queue.size() == 0
    assert registry.get("http://localhost/bad") is None
    # Attempted at most max_retry_count + 1 times
    assert fetch.calls.count(["http://localhost/bad"]) == 3


def test_batch_size_limits_the_run(queue: Queue, filestore: Filestore) -> None:
    for n in range(5):
        queue.push(f"http://localhost/{n}")

    result = BatchStorer(filestore, RecordingFetch()).run(queue, StorerRunOptions(batch_size=2))

    assert result.total == 2
    assert [item.iri for item in queue.get_all()] == [f"http://localhost/{n}" for n in (2, 3, 4)]


def test_sequential_runs_take_one_batch_each(
    queue: Queue, registry: Registry, filestore: Filestore
) -> None:
    queue.push("http://localhost/1")
    queue.push("http://localhost/2")
    queue.push("http://localhost/3", retry_count=1)
    fetch = RecordingFetch()
    storer = BatchStorer(filestore, fetch)
    options = StorerRunOptions(batch_size=1)

    first = storer.run(queue, options)
    assert (first.total, first.processed) == (1, 1)
    assert [(item.iri, item.retry_count) for item in queue.get_all()] == [
        ("http://localhost/2", 0),
        ("http://localhost/3", 1),
    ]

    second = storer.run(queue, options)
    assert (second.total, second.processed) == (1, 1)
    assert [(item.iri, item.retry_count) for item in queue.get_all()] == [
        ("http://localhost/3", 1)
    ]
    assert fetch.calls == [["http://localhost/1"], ["http://localhost/2"]]
    assert sorted(item.iri for item in registry.get_all()) == [
        "http://localhost/1",
        "http://localhost/2",
    ]


def test_groups_are_stored_under_composite_id(
    queue: Queue, registry: Registry, filestore: Filestore
) -> None:
    for n in range(5):
        queue.push(f"http://localhost/{n}")
    fetch = RecordingFetch()

    BatchStorer(filestore, fetch).run(queue, StorerRunOptions(items_per_fetch=2))

    assert sorted(len(call) for call in fetch.calls) == [1, 2, 2]
    items = [item for item in queue.get_all()]
    assert items == []
    composite = "http://localhost/0\nhttp://localhost/1"
    assert filestore.create_path_from_id(composite).read_bytes() == ntriples(
        ["http://localhost/0", "http://localhost/1"]
    )
    assert len(registry.get_all()) == 5


def test_group_id() -> None:
    class Item:
        def __init__(self, iri: str) -> None:
            self.iri = iri

    assert group_id([Item("a")]) == "a"
    assert group_id([Item("a"), Item("b")]) == "a\nb"


def test_mixed_group_is_fetched(queue: Queue, filestore: Filestore) -> None:
    queue.push("http://localhost/1", action="delete")
    queue.push("http://localhost/2", action="create")
    fetch = RecordingFetch()

    BatchStorer(filestore, fetch).run(queue, StorerRunOptions(items_per_fetch=2))

    assert fetch.calls == [["http://localhost/1", "http://localhost/2"]]


def test_concurrency_is_bounded(queue: Queue, filestore: Filestore) -> None:
    for n in range(12):
        queue.push(f"http://localhost/{n}")
    active = 0
    peak = 0
    lock = threading.Lock()

    def slow_fetch(iris: Sequence[str]) -> bytes:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return ntriples(iris)

    result = BatchStorer(filestore, slow_fetch).run(
        queue, StorerRunOptions(number_of_concurrent_requests=3)
    )

    assert result.saved == 12
    assert 1 < peak <= 3
    assert queue.size() == 0


def test_waits_after_each_fetch(queue: Queue, filestore: Filestore) -> None:
    queue.push("http://localhost/1")
    queue.push("http://localhost/2", action="delete")
    sleeps: List[float] = []

    BatchStorer(filestore, RecordingFetch(), sleep=sleeps.append).run(
        queue, StorerRunOptions(wait_between_requests=0.5)
    )

    assert sleeps == [0.5]


def test_empty_queue(queue: Queue, filestore: Filestore) -> None:
    result = BatchStorer(filestore, RecordingFetch()).run(queue)

    assert result.total == 0
    assert result.processed == 0


@pytest.mark.parametrize(
    "options",
    [
        {"number_of_concurrent_requests": 0},
        {"wait_between_requests": -1},
        {"batch_size": 0},
        {"items_per_fetch": 0},
    ],
)
def test_invalid_run_options(options) -> None:
    with pytest.raises(ConfigurationError):
        StorerRunOptions(**options)


def test_failing_listener_does_not_stop_the_run(
    queue: Queue, registry: Registry, filestore: Filestore, caplog: pytest.LogCaptureFixture
) -> None:
    class BrokenListener:
        def processed_resource(self, total: int, processed: int) -> None:
            raise RuntimeError("display gone")

    queue.push("http://localhost/1")
    queue.push("http://localhost/2")

    with caplog.at_level(logging.WARNING, logger="GraphIngest.storer"):
        result = BatchStorer(filestore, RecordingFetch(), listener=BrokenListener()).run(queue)

    assert result.saved == 2
    assert result.retried == 0
    assert queue.size() == 0
    assert len(registry.get_all()) == 2
    assert "Progress listener failed" in caplog.text


def test_missing_group_members_are_not_registered(
    queue: Queue, registry: Registry, filestore: Filestore
) -> None:
    filestore.save("http://localhost/gone", ntriples(["http://localhost/gone"]))
    registry.save("http://localhost/gone")
    queue.push("http://localhost/live")
    queue.push("http://localhost/gone", action="update")

    def fetch(iris: Sequence[str]) -> PartialContent:
        return PartialContent(
            content=ntriples(["http://localhost/live"]),
            missing_iris=frozenset({"http://localhost/gone"}),
        )

    result = BatchStorer(filestore, fetch).run(queue, StorerRunOptions(items_per_fetch=2))

    assert (result.saved, result.removed) == (1, 1)
    assert queue.size() == 0
    assert [item.iri for item in registry.get_all()] == ["http://localhost/live"]
    assert not filestore.create_path_from_id("http://localhost/gone").exists()
    composite = "http://localhost/live\nhttp://localhost/gone"
    assert filestore.create_path_from_id(composite).read_bytes() == ntriples(
        ["http://localhost/live"]
    )
