"""Configuration models and loader for GraphIngest."""

from __future__ import annotations

from .loader import export_config_schema, load_config
from .models import (
    CredentialsConfig,
    DatastoreConfig,
    DiscoveryConfig,
    FilestoreConfig,
    GraphIngestConfig,
    HttpClientConfig,
    LoggingConfig,
    RetryPolicy,
    SparqlConfig,
    StorerConfig,
)

__all__ = [
    "CredentialsConfig",
    "DatastoreConfig",
    "DiscoveryConfig",
    "FilestoreConfig",
    "GraphIngestConfig",
    "HttpClientConfig",
    "LoggingConfig",
    "RetryPolicy",
    "SparqlConfig",
    "StorerConfig",
    "export_config_schema",
    "load_config",
]
