"""Settings loader for the Moonbridge daemon.

Configuration is read from a TOML file (``[moonbridge]`` table, or the top
level when the table is absent). The path comes from the caller, then the
``MOONBRIDGE_CONFIG`` environment variable, then the packaged default. A
missing file yields the built-in defaults.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from marshmallow import ValidationError

from ..const import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH
from .model import RuntimeConfig
from .schema import RuntimeConfigSchema

logger = logging.getLogger(__name__)

_CONFIG_TABLE = "moonbridge"


def resolve_config_path(path: str | os.PathLike[str] | None = None) -> Path:
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def _load_raw_config(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError:
        logger.info("Config file %s not found; using defaults.", path)
        return {}
    table = document.get(_CONFIG_TABLE, document)
    if not isinstance(table, dict):
        raise ValueError(f"[{_CONFIG_TABLE}] in {path} must be a table")
    return table


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a plain mapping."""
    return RuntimeConfigSchema().dump(RuntimeConfig())


def build_runtime_config(raw: dict[str, Any]) -> RuntimeConfig:
    """Validate *raw* and build a RuntimeConfig."""
    try:
        config = RuntimeConfigSchema().load(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc.messages}") from exc
    assert isinstance(config, RuntimeConfig)
    return config


def load_runtime_config(path: str | os.PathLike[str] | None = None) -> RuntimeConfig:
    """Load configuration from TOML/defaults."""

    config_path = resolve_config_path(path)
    try:
        raw = _load_raw_config(config_path)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Malformed config file {config_path}: {exc}") from exc
    return build_runtime_config(raw)


__all__ = [
    "RuntimeConfig",
    "build_runtime_config",
    "get_default_config",
    "load_runtime_config",
    "resolve_config_path",
]
