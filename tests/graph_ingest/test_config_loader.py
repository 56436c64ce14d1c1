"""Tests for configuration models and file/env/CLI precedence."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from GraphIngest.config import GraphIngestConfig, export_config_schema, load_config
from GraphIngest.errors import ConfigurationError

QUERY = "CONSTRUCT { ?s ?p ?o } WHERE { VALUES ?s { ?_iris } ?s ?p ?o }"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("GRAPHINGEST_"):
            monkeypatch.delenv(key)


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "graphingest.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults() -> None:
    config = load_config()

    assert config.storer.number_of_concurrent_requests == 1
    assert config.storer.max_retry_count == 2
    assert config.filestore.extension == ".nt"
    assert config.discovery.collection_iri is None


def test_yaml_file(tmp_path: Path) -> None:
    path = write_yaml(
        tmp_path,
        """
discovery:
  collection_iri: https://example.org/collection.json
  wait_between_requests: 0.5
storer:
  batch_size: 100
  items_per_fetch: 10
""",
    )

    config = load_config(path)

    assert config.discovery.collection_iri == "https://example.org/collection.json"
    assert config.storer.batch_size == 100
    assert config.storer.items_per_fetch == 10


def test_json_file(tmp_path: Path) -> None:
    path = tmp_path / "graphingest.json"
    path.write_text(json.dumps({"filestore": {"dir": "out"}}), encoding="utf-8")

    assert load_config(path).filestore.dir == "out"


def test_env_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = write_yaml(tmp_path, "storer:\n  batch_size: 100\n")
    monkeypatch.setenv("GRAPHINGEST_STORER__BATCH_SIZE", "500")
    monkeypatch.setenv("GRAPHINGEST_HTTP__HEADERS", '{"X-Api-Key": "key"}')
    monkeypatch.setenv("GRAPHINGEST_DATASTORE__WAL_MODE", "false")

    config = load_config(path)

    assert config.storer.batch_size == 500
    assert config.http.headers == {"X-Api-Key": "key"}
    assert config.datastore.wal_mode is False


def test_reserved_env_vars_are_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRAPHINGEST_CONFIG", "graphingest.yaml")
    monkeypatch.setenv("GRAPHINGEST_LOG_DIR", "logs")

    load_config()


def test_cli_overrides_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRAPHINGEST_STORER__BATCH_SIZE", "500")

    config = load_config(
        cli_overrides={
            "storer": {"batch_size": 5, "type": None},
            "discovery": {"collection_iri": None},
        }
    )

    assert config.storer.batch_size == 5
    assert config.storer.type is None


@pytest.mark.parametrize(
    "text",
    [
        "storer:\n  unknown_option: 1\n",
        "storer:\n  number_of_concurrent_requests: 0\n",
        "filestore:\n  extension: nt\n",
        "logging:\n  level: CHATTY\n",
        "storer:\n  fetcher: sparql\n",
        "- not\n- a mapping\n",
        "storer: [unclosed\n",
    ],
)
def test_invalid_config(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigurationError):
        load_config(write_yaml(tmp_path, text))


def test_missing_and_unsupported_files(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "missing.yaml")

    path = tmp_path / "graphingest.toml"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_sparql_fetcher_config() -> None:
    config = GraphIngestConfig(
        storer={"fetcher": "sparql", "items_per_fetch": 50},
        sparql={"endpoint_url": "https://example.org/sparql", "query": QUERY},
    )

    assert config.sparql is not None
    assert config.sparql.timeout_s == 60.0


def test_config_hash_ignores_credentials() -> None:
    first = GraphIngestConfig(
        discovery={
            "collection_iri": "https://example.org/collection.json",
            "credentials": {"username": "user", "password": "one"},
        }
    )
    second = GraphIngestConfig(
        discovery={
            "collection_iri": "https://example.org/collection.json",
            "credentials": {"username": "user", "password": "two"},
        }
    )
    other = GraphIngestConfig(storer={"batch_size": 10})

    assert first.config_hash() == second.config_hash()
    assert first.config_hash() != other.config_hash()


def test_export_schema() -> None:
    schema = export_config_schema()

    assert "storer" in schema["properties"]
    assert "discovery" in schema["properties"]
