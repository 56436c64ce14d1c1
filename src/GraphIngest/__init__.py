"""
GraphIngest: incremental ingestion of remote RDF resources.

Discovers changed resources (IIIF Change Discovery), queues them durably,
fetches them with bounded concurrency and keeps them as N-Triples in a
content-addressable file store, while a registry tracks which resources are
live so obsolete ones can be pruned.

Public names are loaded lazily to keep ``import GraphIngest`` cheap:

    from GraphIngest import Connection, Queue, Filestore, BatchStorer
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__version__ = "0.1.0"

_ATTRIBUTE_EXPORTS = {
    "BatchStorer": ("GraphIngest.storer", "BatchStorer"),
    "StorerRunOptions": ("GraphIngest.storer", "StorerRunOptions"),
    "ChangeDiscoverer": ("GraphIngest.discovery", "ChangeDiscoverer"),
    "QueueSink": ("GraphIngest.discovery", "QueueSink"),
    "Connection": ("GraphIngest.datastore", "Connection"),
    "Queue": ("GraphIngest.datastore", "Queue"),
    "Registry": ("GraphIngest.datastore", "Registry"),
    "Runs": ("GraphIngest.datastore", "Runs"),
    "Dereferencer": ("GraphIngest.dereference", "Dereferencer"),
    "Filestore": ("GraphIngest.filestore", "Filestore"),
    "GraphIngestConfig": ("GraphIngest.config", "GraphIngestConfig"),
    "load_config": ("GraphIngest.config", "load_config"),
    "run_iiif_pipeline": ("GraphIngest.pipeline", "run_iiif_pipeline"),
}

__all__ = ["__version__", *_ATTRIBUTE_EXPORTS]

if TYPE_CHECKING:  # pragma: no cover
    from .config import GraphIngestConfig, load_config
    from .datastore import Connection, Queue, Registry, Runs
    from .dereference import Dereferencer
    from .discovery import ChangeDiscoverer, QueueSink
    from .filestore import Filestore
    from .pipeline import run_iiif_pipeline
    from .storer import BatchStorer, StorerRunOptions


def __getattr__(name: str) -> Any:
    try:
        module_name, attribute = _ATTRIBUTE_EXPORTS[name]
    except KeyError as exc:
        raise AttributeError(f"module 'GraphIngest' has no attribute {name!r}") from exc
    value = getattr(import_module(module_name), attribute)
    globals()[name] = value
    return value
