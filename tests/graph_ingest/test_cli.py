"""CLI tests using Typer's CliRunner."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

import pytest
import yaml
from typer.testing import CliRunner

from GraphIngest import __version__
from GraphIngest.cli import app
from GraphIngest.datastore import Connection, Queue, Registry
from GraphIngest.filestore import Filestore
from GraphIngest.logging_config import LOGGER_NAME

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_graphingest_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "graphingest.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "datastore": {"path": str(tmp_path / "state" / "graphingest.sqlite")},
                "filestore": {"dir": str(tmp_path / "resources")},
                "logging": {"level": "WARNING", "log_dir": str(tmp_path / "logs")},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"graphingest {__version__}" in result.output


def test_queue_size(config_file: Path, tmp_path: Path) -> None:
    with Connection(tmp_path / "state" / "graphingest.sqlite") as connection:
        queue = Queue(connection)
        queue.push("http://localhost/1", type="objects")
        queue.push("http://localhost/2")

    result = runner.invoke(app, ["--config", str(config_file), "queue-size"])
    assert result.exit_code == 0, result.output
    assert result.output.strip().splitlines()[-1] == "2"

    result = runner.invoke(app, ["--config", str(config_file), "queue-size", "--type", "objects"])
    assert result.output.strip().splitlines()[-1] == "1"
    assert (tmp_path / "logs").is_dir()


def test_prune(config_file: Path, tmp_path: Path) -> None:
    filestore = Filestore(tmp_path / "resources")
    with Connection(tmp_path / "state" / "graphingest.sqlite") as connection:
        Registry(connection).save("http://localhost/obsolete")
    filestore.save("http://localhost/obsolete", b"<a> <b> <c> .\n")

    result = runner.invoke(app, ["--config", str(config_file), "prune"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 obsolete resources" in result.output
    assert not filestore.create_path_from_id("http://localhost/obsolete").exists()


def test_clear(config_file: Path, tmp_path: Path) -> None:
    filestore = Filestore(tmp_path / "resources")
    filestore.save("http://localhost/1", b"<a> <b> <c> .\n")

    aborted = runner.invoke(app, ["--config", str(config_file), "clear"], input="n\n")
    assert aborted.exit_code == 1
    assert filestore.dir.exists()

    result = runner.invoke(app, ["--config", str(config_file), "clear", "--yes"])
    assert result.exit_code == 0, result.output
    assert not filestore.dir.exists()


def test_iiif_requires_collection(config_file: Path) -> None:
    result = runner.invoke(app, ["--config", str(config_file), "iiif"])

    assert result.exit_code == 1


def test_invalid_config_exits_with_2(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("storer:\n  items_per_fetch: 0\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(path), "queue-size"])

    assert result.exit_code == 2


def test_schema() -> None:
    result = runner.invoke(app, ["schema"])

    assert result.exit_code == 0
    assert "storer" in json.loads(result.output)["properties"]
