"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: GRAPHINGEST_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation:
  GRAPHINGEST_STORER__BATCH_SIZE=500  →  storer.batch_size=500
  GRAPHINGEST_HTTP__HEADERS='{"X-Api-Key": "k"}'  →  http.headers={...}

JSON values are automatically parsed; strings are type-coerced when possible.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import GraphIngestConfig

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "GRAPHINGEST_"

# Read by the CLI and logging setup directly, not config fields
_RESERVED_ENV_KEYS = frozenset({"CONFIG", "LOG_DIR"})

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: str | Path) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Args:
        path: File path (suffix determines format: .yaml/.yml or .json)

    Returns:
        Parsed config dictionary

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigurationError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """Assign ``value`` to ``data`` following a dot-separated key path."""
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Attempt to coerce environment variable string to appropriate type.

    JSON parsing first (lists, dicts, bools, numbers, null), then plain
    ``true``/``false``; anything else stays a string.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    return value


def _merge_env_overrides(data: dict[str, Any], env_prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Overlay environment variables onto config dict.

    Looks for ``env_prefix`` variables and maps double-underscore notation to
    nested dicts.
    """
    for env_key, env_value in sorted(os.environ.items()):
        if not env_key.startswith(env_prefix):
            continue
        if env_key[len(env_prefix) :].upper() in _RESERVED_ENV_KEYS:
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        dotted_key = relative_key.replace("__", ".")
        coerced_value = _coerce_env_value(env_value)

        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug(f"Environment override: {env_key} → {dotted_key}")

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Recursively merge CLI overrides into ``data``; ``None`` values are ignored."""
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        elif isinstance(value, Mapping):
            data[key] = _merge_cli_overrides({}, value)
        else:
            data[key] = value
        _LOGGER.debug(f"CLI override: {key}")

    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | Path | None = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> GraphIngestConfig:
    """
    Load GraphIngestConfig from file, environment, and CLI with proper precedence.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to YAML/JSON config file (optional)
        env_prefix: Environment variable prefix (default: GRAPHINGEST_)
        cli_overrides: Nested CLI overrides dict (optional)

    Returns:
        Validated GraphIngestConfig instance

    Raises:
        ConfigurationError: If config is invalid or file cannot be read
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info(f"Loaded config from {path}")

    data = _merge_env_overrides(data, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = GraphIngestConfig.model_validate(data)
    except ValidationError as e:
        _LOGGER.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    _LOGGER.info(f"Configuration validated. Config hash: {config.config_hash()[:8]}...")
    return config


def export_config_schema() -> dict[str, Any]:
    """Export the JSON Schema of GraphIngestConfig."""
    return GraphIngestConfig.model_json_schema()
