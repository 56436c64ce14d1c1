"""
Structured Logging Utilities

Centralizes logging setup for GraphIngest: a console handler for operators
and a rotating JSON-lines file handler for machines. Secrets are masked
before records are written, and old log files are compressed and finally
removed according to the retention window.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .config.models import LoggingConfig

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging", "LOGGER_NAME"]

LOGGER_NAME = "GraphIngest"
DEFAULT_LOG_DIR = Path("logs")

_SENSITIVE_KEYS = {"authorization", "password", "token", "secret", "api_key", "apikey"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"password": "secret", "iri": "http://x"})
        {'password': '***masked***', 'iri': 'http://x'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_obj.update(extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def _compress_old_log(path: Path) -> None:
    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    """Compress logs older than the retention window, delete compressed ones past it."""
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > 2 * retention_delta:
            file.unlink(missing_ok=True)


def setup_logging(config: LoggingConfig, log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure console and JSON file handlers on the ``GraphIngest`` logger.

    Calling it again replaces the handlers installed by an earlier call.

    Args:
        config: Logging configuration containing level, size, and retention.
        log_dir: Directory override; falls back to ``config.log_dir``, the
            ``GRAPHINGEST_LOG_DIR`` environment variable and ``./logs``.

    Returns:
        The configured package logger.
    """
    if log_dir is None:
        configured = config.log_dir or os.environ.get("GRAPHINGEST_LOG_DIR")
        log_dir = Path(configured) if configured else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(log_dir, config.retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_graphingest_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._graphingest_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        log_dir / f"graphingest-{today}.jsonl",
        maxBytes=int(config.max_log_size_mb * 1024 * 1024),
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._graphingest_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = False
    return logger
