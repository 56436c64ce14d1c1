"""
IIIF Change Discovery client

Walks an activity stream (https://iiif.io/api/discovery/1.0/) backwards from
its most recent page and turns the activities into change records:

**Collection algorithm**

The collection document names its most recent page in ``last.id``. Pages are
processed from a stack; after a page is done, its ``prev.id`` (if any) is
pushed, so pages are read strictly in backward-link order. The client waits
``wait_between_requests`` seconds after every page.

**Page algorithm**

Activities on a page are read newest to oldest:

1. A non-Refresh activity that ended before ``date_last_run`` ends the run;
   everything older has been seen by an earlier run.
2. A Refresh ends the run for a client that never ran before. Otherwise
   only deletions are of interest from here on, in this page and every older
   one.
3. An object that was already handled in this run is skipped.
4. Delete yields ``delete``; Remove yields ``remove`` when it removes the
   object from this collection.
5. In only-delete mode nothing else is emitted.
6. Create yields ``create``, Update ``update``, Add ``add`` (when added to
   this collection) and Move yields ``move-delete`` for the object and
   ``move-create`` for the target.
7. The object is marked as handled.

**Usage:**

    discoverer = ChangeDiscoverer(
        collection_iri="https://example.org/activity/all-changes",
        on_change=QueueSink(queue, type="objects"),
        date_last_run=last_run.created_at if last_run else None,
    )
    discoverer.run()

The set of handled objects grows with the stream for the lifetime of the
instance.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional, Protocol, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config.models import CredentialsConfig, HttpClientConfig
from ..datastore.models import Action
from ..datastore.queue import Queue
from ..errors import ChangeDiscoveryError
from ..network.client import basic_auth, create_http_client
from ..network.retry import request_with_retry
from .models import (
    AddActivity,
    Collection,
    CreateUpdateDeleteActivity,
    MoveActivity,
    Page,
    RefreshActivity,
    RemoveActivity,
)

__all__ = [
    "ChangeType",
    "ChangeRecord",
    "ACTION_BY_CHANGE_TYPE",
    "DiscoveryListener",
    "QueueSink",
    "ChangeDiscoverer",
]

_LOGGER = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class ChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ADD = "add"
    REMOVE = "remove"
    MOVE_DELETE = "move-delete"
    MOVE_CREATE = "move-create"


ACTION_BY_CHANGE_TYPE = {
    ChangeType.ADD: Action.CREATE,
    ChangeType.CREATE: Action.CREATE,
    ChangeType.MOVE_CREATE: Action.CREATE,
    ChangeType.UPDATE: Action.UPDATE,
    ChangeType.DELETE: Action.DELETE,
    ChangeType.REMOVE: Action.DELETE,
    ChangeType.MOVE_DELETE: Action.DELETE,
}


class ChangeRecord(NamedTuple):
    iri: str
    change_type: ChangeType


class DiscoveryListener(Protocol):
    """Observer of discovery progress. Every method is optional."""

    def process_collection(self, collection_iri: str) -> None: ...

    def process_page(self, page_iri: str, date_last_run: Optional[datetime]) -> None: ...

    def terminate(self, at: datetime) -> None: ...

    def processed_before(self, iri: str) -> None: ...

    def only_delete(self) -> None: ...


class QueueSink:
    """Pushes change records into a queue with the matching action."""

    def __init__(self, queue: Queue, type: Optional[str] = None) -> None:
        self.queue = queue
        self.type = type

    def __call__(self, record: ChangeRecord) -> None:
        self.queue.push(record.iri, action=ACTION_BY_CHANGE_TYPE[record.change_type], type=self.type)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChangeDiscoverer:
    """Stateful, backward-paging reader of a IIIF Change Discovery stream."""

    def __init__(
        self,
        collection_iri: str,
        on_change: Callable[[ChangeRecord], None],
        *,
        date_last_run: Optional[datetime] = None,
        wait_between_requests: float = 0.0,
        credentials: Optional[CredentialsConfig] = None,
        client: Optional[httpx.Client] = None,
        http_config: Optional[HttpClientConfig] = None,
        logger: Optional[logging.Logger] = None,
        listener: Optional[DiscoveryListener] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if wait_between_requests < 0:
            raise ValueError("wait_between_requests must be >= 0")
        self.collection_iri = collection_iri
        self.on_change = on_change
        self.date_last_run = _as_utc(date_last_run)
        self.wait_between_requests = wait_between_requests
        self.http_config = http_config or HttpClientConfig()
        self.logger = logger or _LOGGER
        self.listener = listener
        self._auth = basic_auth(credentials)
        self._client = client
        self._sleep = sleep
        self.pending_pages: list[str] = []
        self.processed_identifiers: set[str] = set()

    # ------------------------------------------------------------------ #
    # Notifications
    # ------------------------------------------------------------------ #

    def _notify(self, event: str, *args: Any) -> None:
        handler = getattr(self.listener, event, None)
        if handler is None:
            return
        try:
            handler(*args)
        except Exception as e:
            self.logger.warning(f"Discovery listener failed on {event}: {e}")

    def _emit(self, iri: str, change_type: ChangeType) -> None:
        self.logger.debug(f"Change found: {change_type.value} {iri}")
        self.on_change(ChangeRecord(iri, change_type))

    # ------------------------------------------------------------------ #
    # HTTP
    # ------------------------------------------------------------------ #

    def _fetch(self, client: httpx.Client, iri: str, model: Type[_ModelT]) -> _ModelT:
        response = request_with_retry(
            client,
            "GET",
            iri,
            retry=self.http_config.retry,
            auth=self._auth,
            headers={"Accept": "application/ld+json, application/json;q=0.9"},
        )
        response.raise_for_status()
        try:
            return model.model_validate(response.json())
        except (ValidationError, json.JSONDecodeError) as e:
            raise ChangeDiscoveryError(f"Invalid document at {iri}: {e}", iri=iri) from e

    # ------------------------------------------------------------------ #
    # Algorithms
    # ------------------------------------------------------------------ #

    def _process_page(
        self, client: httpx.Client, page_iri: str, only_delete: bool
    ) -> tuple[bool, bool]:
        """Process one page; returns ``(terminated, only_delete)``."""
        self.logger.info(f"Processing page {page_iri}")
        self._notify("process_page", page_iri, self.date_last_run)

        page = self._fetch(client, page_iri, Page)

        for activity in reversed(page.ordered_items):
            if isinstance(activity, RefreshActivity):
                if self.date_last_run is None:
                    self.logger.info(f"Refresh at {activity.start_time.isoformat()}; stopping")
                    self._notify("terminate", activity.start_time)
                    return True, only_delete
                only_delete = True
                continue

            if self.date_last_run is not None and activity.end_time < self.date_last_run:
                self.logger.info(
                    f"Reached activity of {activity.end_time.isoformat()}, before last run; stopping"
                )
                self._notify("terminate", activity.end_time)
                return True, only_delete

            iri = activity.object.id
            if iri in self.processed_identifiers:
                self._notify("processed_before", iri)
                continue

            if isinstance(activity, CreateUpdateDeleteActivity) and activity.type == "Delete":
                self._emit(iri, ChangeType.DELETE)
            elif isinstance(activity, RemoveActivity) and activity.origin.id == self.collection_iri:
                self._emit(iri, ChangeType.REMOVE)

            if only_delete:
                self._notify("only_delete")
            elif isinstance(activity, CreateUpdateDeleteActivity):
                if activity.type == "Create":
                    self._emit(iri, ChangeType.CREATE)
                elif activity.type == "Update":
                    self._emit(iri, ChangeType.UPDATE)
            elif isinstance(activity, AddActivity):
                if activity.target.id == self.collection_iri:
                    self._emit(iri, ChangeType.ADD)
            elif isinstance(activity, MoveActivity):
                self._emit(iri, ChangeType.MOVE_DELETE)
                self._emit(activity.target.id, ChangeType.MOVE_CREATE)

            self.processed_identifiers.add(iri)

        if page.prev is not None:
            self.pending_pages.append(page.prev.id)
        return False, only_delete

    def _process_collection(self, client: httpx.Client) -> None:
        self.logger.info(f"Processing collection {self.collection_iri}")
        self._notify("process_collection", self.collection_iri)

        collection = self._fetch(client, self.collection_iri, Collection)
        self.pending_pages.append(collection.last.id)

        only_delete = False
        while self.pending_pages:
            page_iri = self.pending_pages.pop()
            terminated, only_delete = self._process_page(client, page_iri, only_delete)
            if self.wait_between_requests:
                self._sleep(self.wait_between_requests)
            if terminated:
                self.pending_pages.clear()

    def run(self) -> None:
        """Walk the stream and report every relevant change to ``on_change``.

        Raises:
            httpx.HTTPError: If a collection or page cannot be retrieved
            ChangeDiscoveryError: If a collection or page is malformed
        """
        if self._client is not None:
            self._process_collection(self._client)
            return
        with create_http_client(self.http_config) as client:
            self._process_collection(client)
