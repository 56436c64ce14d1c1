"""
Batch storer: drains the queue into the file store

One run takes up to ``batch_size`` items from the queue (oldest first),
splits them into groups of ``items_per_fetch`` and resolves the groups on a
bounded thread pool:

- a group whose items are all ``delete`` actions is removed from the file
  store and dropped from queue and registry, without any fetch
- any other group is fetched with the injected fetch function, stored under
  the group's id and promoted from the queue into the registry
- a fetch that raises :class:`~GraphIngest.errors.ResourceNotFoundError` is
  handled like a delete; a :class:`PartialContent` result stores the group
  and handles its missing members like deletes
- any other failure sends every item of the group back into the queue with an
  incremented retry count; items that exhausted their retries are logged and
  dropped

``run`` returns once every group has settled. Completion order under
concurrency is unspecified; each item is attempted at most
``max_retry_count + 1`` times across runs.

**Usage:**

    storer = BatchStorer(filestore, fetch=dereferencer)
    result = storer.run(queue, StorerRunOptions(number_of_concurrent_requests=4))
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    FrozenSet,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Sequence,
    Union,
)

from ..datastore.models import Action, QueueItem
from ..datastore.queue import Queue
from ..errors import ConfigurationError, ResourceNotFoundError, RetryLimitExceededError
from ..filestore import Content, Filestore
from .chunks import to_chunks

__all__ = [
    "BatchResult",
    "BatchStorer",
    "FetchFunction",
    "PartialContent",
    "StorerListener",
    "StorerRunOptions",
    "group_id",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartialContent:
    """Fetch result for a group of which some members no longer exist.

    The storer keeps ``content`` for the group and handles every IRI in
    ``missing_iris`` like a delete.
    """

    content: Content
    missing_iris: FrozenSet[str]


FetchFunction = Callable[[Sequence[str]], Union[Content, PartialContent]]


class StorerListener(Protocol):
    def processed_resource(self, total: int, processed: int) -> None: ...


class _Outcome(NamedTuple):
    saved: int
    removed: int


@dataclass(frozen=True)
class StorerRunOptions:
    type: Optional[str] = None
    number_of_concurrent_requests: int = 1
    wait_between_requests: float = 0.0
    batch_size: Optional[int] = None
    items_per_fetch: int = 1

    def __post_init__(self) -> None:
        if self.number_of_concurrent_requests < 1:
            raise ConfigurationError("number_of_concurrent_requests must be >= 1")
        if self.wait_between_requests < 0:
            raise ConfigurationError("wait_between_requests must be >= 0")
        if self.batch_size is not None and self.batch_size < 1:
            raise ConfigurationError("batch_size must be >= 1")
        if self.items_per_fetch < 1:
            raise ConfigurationError("items_per_fetch must be >= 1")


@dataclass
class BatchResult:
    total: int = 0
    processed: int = 0
    saved: int = 0
    removed: int = 0
    retried: int = 0
    abandoned: int = 0
    abandoned_iris: List[str] = field(default_factory=list)


def group_id(items: Sequence[QueueItem]) -> str:
    """Identifier the content of a group is stored under."""
    return "\n".join(item.iri for item in items)


class BatchStorer:
    """Bounded-concurrency consumer of queue items."""

    def __init__(
        self,
        filestore: Filestore,
        fetch: FetchFunction,
        *,
        logger: Optional[logging.Logger] = None,
        listener: Optional[StorerListener] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.filestore = filestore
        self.fetch = fetch
        self.logger = logger or _LOGGER
        self.listener = listener
        self._sleep = sleep

    def _remove_items(self, queue: Queue, items: Sequence[QueueItem]) -> None:
        for item in items:
            self.filestore.remove_by_id(item.iri)
            queue.process_and_remove(item)

    def _remove_group(self, queue: Queue, items: Sequence[QueueItem]) -> _Outcome:
        if len(items) > 1:
            self.filestore.remove_by_id(group_id(items))
        self._remove_items(queue, items)
        return _Outcome(saved=0, removed=len(items))

    def _process_group(
        self, queue: Queue, items: Sequence[QueueItem], options: StorerRunOptions
    ) -> _Outcome:
        if all(item.action == Action.DELETE for item in items):
            return self._remove_group(queue, items)

        try:
            content = self.fetch([item.iri for item in items])
        except ResourceNotFoundError as e:
            self.logger.info(f"{e}; removing {len(items)} item(s)")
            return self._remove_group(queue, items)
        finally:
            if options.wait_between_requests:
                self._sleep(options.wait_between_requests)

        present: Sequence[QueueItem] = items
        if isinstance(content, PartialContent):
            present = [item for item in items if item.iri not in content.missing_iris]
            gone = [item for item in items if item.iri in content.missing_iris]
            self.logger.info(f"{len(gone)} of {len(items)} item(s) no longer exist; removing them")
            self._remove_items(queue, gone)
            content = content.content

        self.filestore.save(group_id(items), content)
        for item in present:
            queue.process_and_save(item)
        return _Outcome(saved=len(present), removed=len(items) - len(present))

    def _report_progress(self, result: BatchResult) -> None:
        if self.listener is None:
            return
        try:
            self.listener.processed_resource(result.total, result.processed)
        except Exception as e:
            self.logger.warning(f"Progress listener failed: {e}")

    def _retry_group(self, queue: Queue, items: Sequence[QueueItem], result: BatchResult) -> None:
        for item in items:
            try:
                queue.retry(item)
                result.retried += 1
            except RetryLimitExceededError as e:
                self.logger.error(str(e))
                result.abandoned += 1
                result.abandoned_iris.append(item.iri)

    def run(self, queue: Queue, options: Optional[StorerRunOptions] = None) -> BatchResult:
        """Resolve one batch of queue items; returns once all of them settled."""
        options = options or StorerRunOptions()
        items = queue.get_all(type=options.type, limit=options.batch_size)
        groups = to_chunks(items, options.items_per_fetch)
        result = BatchResult(total=len(items))

        self.logger.info(f"Processing {len(items)} items from the queue")
        if not items:
            return result

        with ThreadPoolExecutor(
            max_workers=options.number_of_concurrent_requests,
            thread_name_prefix="graphingest-storer",
        ) as executor:
            futures: Dict[Future[_Outcome], List[QueueItem]] = {
                executor.submit(self._process_group, queue, group, options): group
                for group in groups
            }
            for future in as_completed(futures):
                group = futures[future]
                try:
                    outcome = future.result()
                except Exception as err:
                    self.logger.error(
                        f'An error occurred when processing "{group_id(group)}": {err}',
                        exc_info=err,
                    )
                    self._retry_group(queue, group, result)
                else:
                    result.saved += outcome.saved
                    result.removed += outcome.removed

                result.processed += len(group)
                self._report_progress(result)

        self.logger.info(
            f"Processed {result.processed} items: {result.saved} stored, "
            f"{result.removed} removed, {result.retried} retried, {result.abandoned} abandoned"
        )
        return result
