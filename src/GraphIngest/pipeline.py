"""
IIIF ingestion pipeline

Sequences the steps of one scheduled run against a IIIF Change Discovery
endpoint:

1. Get the size of the queue.
2. If the queue is empty: get the last run, discover the changes since the
   last run into the queue and register the new run with the time discovery
   started. A failed discovery keeps the previous run, so the next attempt
   covers the same window again. Continue with step 3 only
   if the queue now has items and either no batch size is set or the batch
   covers the whole queue; otherwise the next run picks the items up.
3. Otherwise (or after step 2): drain one batch of the queue into the file
   store.
4. If the queue is empty afterwards, publish the file store.

A run that leaves items in the queue (because of the batch size or retries)
is resumed by the next run, which skips discovery until the queue is empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import httpx

from . import tasks
from .config.models import GraphIngestConfig
from .datastore import Connection, Queue, Runs
from .dereference import Dereferencer
from .discovery import ChangeDiscoverer, QueueSink
from .errors import ConfigurationError, GraphIngestError, PublishError
from .filestore import Filestore
from .network.client import create_http_client
from .sparql import SparqlFetcher
from .storer import (
    BatchResult,
    BatchStorer,
    FetchFunction,
    StorerListener,
    StorerRunOptions,
)

__all__ = ["PipelineResult", "Publisher", "run_iiif_pipeline"]

logger = logging.getLogger(__name__)

Publisher = Callable[[Path], None]


@dataclass
class PipelineResult:
    initial_queue_size: int
    discovered: bool = False
    stored: Optional[BatchResult] = None
    final_queue_size: int = 0
    published: bool = False


def _publish(publish: Publisher, resource_dir: Path) -> None:
    logger.info(f'Publishing resources in "{resource_dir}"')
    try:
        publish(resource_dir)
    except GraphIngestError:
        raise
    except Exception as e:
        raise PublishError(f"Publishing {resource_dir} failed: {e}") from e


def run_iiif_pipeline(
    config: GraphIngestConfig,
    *,
    publish: Optional[Publisher] = None,
    client: Optional[httpx.Client] = None,
    listener: Optional[StorerListener] = None,
) -> PipelineResult:
    """Run one pass of the IIIF pipeline described in the module docstring.

    Raises:
        ConfigurationError: If no collection IRI is configured
        PublishError: If ``publish`` fails
    """
    if not config.discovery.collection_iri:
        raise ConfigurationError("discovery.collection_iri is required for the IIIF pipeline")

    storer_config = config.storer
    filestore = Filestore(config.filestore.dir, extension=config.filestore.extension)
    http_client = client or create_http_client(config.http)

    try:
        with Connection(
            config.datastore.path,
            wal_mode=config.datastore.wal_mode,
            busy_timeout_ms=config.datastore.busy_timeout_ms,
        ) as connection:
            queue = Queue(connection, max_retry_count=storer_config.max_retry_count)
            runs = Runs(connection)

            queue_size = tasks.get_queue_size(queue, storer_config.type)
            result = PipelineResult(initial_queue_size=queue_size)

            if queue_size == 0:
                last_run = tasks.get_last_run(runs)
                started_at = datetime.now(timezone.utc)

                discoverer = ChangeDiscoverer(
                    config.discovery.collection_iri,
                    QueueSink(queue, type=storer_config.type),
                    date_last_run=last_run.created_at if last_run else None,
                    wait_between_requests=config.discovery.wait_between_requests,
                    credentials=config.discovery.credentials,
                    client=http_client,
                    http_config=config.http,
                )
                discoverer.run()
                # Only a completed discovery moves the resume point forward
                tasks.register_run(runs, started_at)
                result.discovered = True

                queue_size = tasks.get_queue_size(queue, storer_config.type)
                batch_size = storer_config.batch_size
                if queue_size == 0 or (batch_size is not None and batch_size < queue_size):
                    result.final_queue_size = queue_size
                    return result

            fetch: FetchFunction
            if storer_config.fetcher == "sparql":
                if config.sparql is None:
                    raise ConfigurationError("storer.fetcher 'sparql' requires a sparql section")
                fetch = SparqlFetcher(config.sparql, http_config=config.http, client=http_client)
            else:
                fetch = Dereferencer(
                    http_config=config.http,
                    credentials=storer_config.credentials,
                    client=http_client,
                )

            storer = BatchStorer(filestore, fetch, listener=listener)
            result.stored = storer.run(
                queue,
                StorerRunOptions(
                    type=storer_config.type,
                    number_of_concurrent_requests=storer_config.number_of_concurrent_requests,
                    wait_between_requests=storer_config.wait_between_requests,
                    batch_size=storer_config.batch_size,
                    items_per_fetch=storer_config.items_per_fetch,
                ),
            )

            result.final_queue_size = tasks.get_queue_size(queue, storer_config.type)
            if result.final_queue_size == 0 and publish is not None:
                _publish(publish, filestore.dir)
                result.published = True
            return result
    finally:
        if client is None:
            http_client.close()
