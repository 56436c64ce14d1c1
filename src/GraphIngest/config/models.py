"""
Pydantic v2 Configuration Models for GraphIngest

Provides strict, typed configuration for all ingestion subsystems:
- HTTP client settings (timeouts, headers, RDF content negotiation)
- Retry policy for transient HTTP failures
- Datastore (SQLite queue/registry/runs) settings
- File store location and file extension
- Change Discovery endpoint and credentials
- Batch storer concurrency, throttling and chunking
- Optional SPARQL endpoint for multi-resource fetches
- Logging
- Top-level GraphIngestConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

from typing import ClassVar, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ============================================================================
# HTTP
# ============================================================================

DEFAULT_RDF_ACCEPT = (
    "application/n-triples, text/turtle;q=0.9, application/ld+json;q=0.8, "
    "application/rdf+xml;q=0.7"
)


class RetryPolicy(BaseModel):
    """Configuration for HTTP request retry behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, description="Maximum attempts per request")
    max_delay_seconds: int = Field(default=30, description="Overall retry deadline in seconds")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("max_delay_seconds")
    @classmethod
    def validate_max_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_delay_seconds must be >= 0")
        return v


class HttpClientConfig(BaseModel):
    """HTTP client configuration shared by discovery and dereferencing."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(
        default="GraphIngest/0.1 (+https://github.com/graphingest)",
        description="User-Agent header sent with every request",
    )
    timeout_s: float = Field(default=30.0, description="Request timeout in seconds")
    accept: str = Field(
        default=DEFAULT_RDF_ACCEPT,
        description="Accept header used when dereferencing resources",
    )
    headers: Dict[str, str] = Field(
        default_factory=dict, description="Extra headers sent when dereferencing"
    )
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry policy")

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_s must be > 0")
        return v


class CredentialsConfig(BaseModel):
    """HTTP Basic credentials."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    type: Literal["basic-auth"] = Field(default="basic-auth", description="Credential type")
    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")


# ============================================================================
# Persistence
# ============================================================================


class DatastoreConfig(BaseModel):
    """SQLite database holding the queue, registry and runs tables."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    path: str = Field(default="state/graphingest.sqlite", description="SQLite database file")
    wal_mode: bool = Field(default=True, description="Enable WAL mode")
    busy_timeout_ms: int = Field(default=5000, ge=0, description="SQLite busy timeout")


class FilestoreConfig(BaseModel):
    """Content-addressable file store location."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    dir: str = Field(default="data/resources", description="Root directory of stored files")
    extension: str = Field(default=".nt", description="File extension of stored files")

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v.startswith("."):
            raise ValueError("extension must start with '.'")
        return v


# ============================================================================
# Discovery and storing
# ============================================================================


class DiscoveryConfig(BaseModel):
    """IIIF Change Discovery endpoint."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    collection_iri: Optional[str] = Field(
        default=None, description="IRI of the OrderedCollection to walk"
    )
    wait_between_requests: float = Field(
        default=0.0, ge=0, description="Seconds to wait between page fetches"
    )
    credentials: Optional[CredentialsConfig] = Field(
        default=None, description="Optional Basic auth credentials"
    )


class StorerConfig(BaseModel):
    """Batch storer settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    type: Optional[str] = Field(default=None, description="Queue partition to drain")
    number_of_concurrent_requests: int = Field(
        default=1, ge=1, description="Maximum number of in-flight fetches"
    )
    wait_between_requests: float = Field(
        default=0.0, ge=0, description="Seconds each worker waits after a fetch"
    )
    batch_size: Optional[int] = Field(
        default=None, ge=1, description="Maximum number of queue items per run"
    )
    items_per_fetch: int = Field(
        default=1, ge=1, description="Number of resources fetched per request"
    )
    max_retry_count: int = Field(
        default=2, ge=0, description="Retry ceiling before an item is abandoned"
    )
    fetcher: Literal["dereference", "sparql"] = Field(
        default="dereference", description="Fetch strategy"
    )
    credentials: Optional[CredentialsConfig] = Field(
        default=None, description="Optional Basic auth credentials for dereferencing"
    )


class SparqlConfig(BaseModel):
    """SPARQL endpoint used for CONSTRUCT fetches and change checks."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    endpoint_url: str = Field(..., description="SPARQL endpoint URL")
    query: str = Field(
        ...,
        description="CONSTRUCT query; '?_iris' is replaced with the IRIs to fetch",
    )
    change_query: Optional[str] = Field(
        default=None,
        description="SELECT query returning a single '?identifier' freshness marker",
    )
    timeout_s: float = Field(default=60.0, gt=0, description="Query timeout in seconds")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if "?_iris" not in v:
            raise ValueError("query must contain the '?_iris' placeholder")
        return v


# ============================================================================
# Logging
# ============================================================================


class LoggingConfig(BaseModel):
    """Structured logging configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Log level")
    max_log_size_mb: int = Field(default=50, gt=0, description="Rotate after this many MB")
    retention_days: int = Field(default=30, ge=1, description="Days to keep log files")
    log_dir: Optional[str] = Field(default=None, description="Log directory override")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"level must be one of {sorted(allowed)}")
        return level


# ============================================================================
# Top-Level Configuration
# ============================================================================


class GraphIngestConfig(BaseModel):
    """
    Single source of truth for GraphIngest configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    run_id: Optional[str] = Field(default=None, description="Run identifier for traceability")
    datastore: DatastoreConfig = Field(
        default_factory=DatastoreConfig, description="Datastore configuration"
    )
    filestore: FilestoreConfig = Field(
        default_factory=FilestoreConfig, description="File store configuration"
    )
    http: HttpClientConfig = Field(
        default_factory=HttpClientConfig, description="HTTP client configuration"
    )
    discovery: DiscoveryConfig = Field(
        default_factory=DiscoveryConfig, description="Change Discovery configuration"
    )
    storer: StorerConfig = Field(default_factory=StorerConfig, description="Storer configuration")
    sparql: Optional[SparqlConfig] = Field(default=None, description="SPARQL configuration")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging")

    @model_validator(mode="after")
    def check_sparql_fetcher(self) -> "GraphIngestConfig":
        if self.storer.fetcher == "sparql" and self.sparql is None:
            raise ValueError("storer.fetcher 'sparql' requires a sparql section")
        return self

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Credentials are excluded so the hash can be logged.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        import hashlib
        import json

        payload = self.model_dump(
            mode="json",
            exclude={"discovery": {"credentials"}, "storer": {"credentials"}},
        )
        normalized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
