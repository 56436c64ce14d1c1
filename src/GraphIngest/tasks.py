"""Pipeline steps shared by the ingestion workflows.

Each step is a plain function over the datastore and file store objects, so
a workflow is a sequence of calls and the steps can be tested in isolation.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .datastore import Queue, Registry, RegistryItem, RunItem, Runs
from .filestore import Filestore
from .sparql import ChangeCheckResult

__all__ = [
    "ChangeChecker",
    "get_queue_size",
    "get_last_run",
    "register_run",
    "register_run_and_check_if_run_must_continue",
    "remove_obsolete_resources",
    "remove_all_resources",
]

logger = logging.getLogger(__name__)

ChangeChecker = Callable[[Optional[str]], ChangeCheckResult]


def get_queue_size(queue: Queue, type: Optional[str] = None) -> int:
    size = queue.size(type)
    logger.info(f"Queue size: {size}" + (f" (type {type!r})" if type is not None else ""))
    return size


def get_last_run(runs: Runs) -> Optional[RunItem]:
    logger.info("Getting last run")
    return runs.get_last()


def register_run(runs: Runs, started_at: Optional[datetime] = None) -> bool:
    """Record a run that started at ``started_at`` (default now); it must always continue."""
    logger.info("Registering run")
    runs.save(created_at=started_at)
    return True


def register_run_and_check_if_run_must_continue(runs: Runs, checker: ChangeChecker) -> bool:
    """Record a run and report whether the source changed since the last one.

    The new run stores the identifier returned by ``checker`` so the next run
    compares against it.
    """
    logger.info("Registering run")
    last_run = runs.get_last()
    response = checker(last_run.identifier if last_run else None)
    runs.save(identifier=response.identifier)
    logger.info(f"Must continue run? {'Yes' if response.is_changed else 'No'}")
    return response.is_changed


def remove_obsolete_resources(
    registry: Registry, filestore: Filestore, type: Optional[str] = None
) -> list[RegistryItem]:
    """Delete stored resources that are registered but no longer queued.

    Call only after the queue was repopulated with every live identifier of
    ``type``.
    """
    logger.info(f'Removing obsolete resources in "{filestore.dir}"')
    removed = registry.remove_if_not_in_queue(type)
    for item in removed:
        filestore.remove_by_id(item.iri)
    logger.info(f'Removed {len(removed)} obsolete resources in "{filestore.dir}"')
    return removed


def remove_all_resources(filestore: Filestore) -> None:
    logger.info(f'Removing all resources in "{filestore.dir}"')
    filestore.remove_all()
