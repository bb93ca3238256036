"""
Configuration Loader (``gem_config.loader``).

Responsibility
--------------
Loads the settings YAML and parses it into ``KernelSettings``.  Callers use
``gem_config.get_active_config()``; this module is its implementation.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a bad value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from gem_config.schema import KernelSettings

ENV_DATABASE_URL = "GEM_DATABASE_URL"
ENV_LOG_LEVEL = "GEM_LOG_LEVEL"
ENV_SQL_ECHO = "GEM_SQL_ECHO"

# section -> {yaml key: KernelSettings field}
_FIELD_MAP: dict[str, dict[str, str]] = {
    "database": {
        "url": "database_url",
        "echo": "echo",
        "pool_size": "pool_size",
        "max_overflow": "max_overflow",
        "busy_timeout_seconds": "busy_timeout_seconds",
    },
    "logging": {
        "level": "log_level",
    },
    "allocation": {
        "max_attempts": "allocation_max_attempts",
        "sku_counter_name": "sku_counter_name",
    },
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Cannot parse boolean from {value!r}")


def flatten_settings(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map nested YAML sections onto KernelSettings field names."""
    fields: dict[str, Any] = {}
    for section, values in data.items():
        if section not in _FIELD_MAP:
            raise ValueError(f"Unknown configuration section: {section!r}")
        if not isinstance(values, dict):
            raise ValueError(f"Section {section!r} must be a mapping")
        for key, value in values.items():
            if key not in _FIELD_MAP[section]:
                raise ValueError(f"Unknown configuration key: {section}.{key}")
            fields[_FIELD_MAP[section][key]] = value
    return fields


def apply_env_overrides(
    fields: dict[str, Any],
    environ: Mapping[str, str],
) -> dict[str, Any]:
    result = dict(fields)
    if environ.get(ENV_DATABASE_URL):
        result["database_url"] = environ[ENV_DATABASE_URL]
    if environ.get(ENV_LOG_LEVEL):
        result["log_level"] = environ[ENV_LOG_LEVEL].upper()
    if ENV_SQL_ECHO in environ:
        result["echo"] = parse_bool(environ[ENV_SQL_ECHO])
    return result


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical data, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(fields: Mapping[str, Any]) -> KernelSettings:
    """
    Build ``KernelSettings`` from flat field values.

    Raises:
        ValueError: missing database_url, or a value of the wrong type.
    """
    if "database_url" not in fields:
        raise ValueError("database.url is required")
    try:
        settings = KernelSettings(
            database_url=str(fields["database_url"]),
            echo=parse_bool(fields.get("echo", False)),
            pool_size=int(fields.get("pool_size", 20)),
            max_overflow=int(fields.get("max_overflow", 10)),
            busy_timeout_seconds=float(fields.get("busy_timeout_seconds", 30.0)),
            log_level=str(fields.get("log_level", "INFO")).upper(),
            allocation_max_attempts=int(fields.get("allocation_max_attempts", 3)),
            sku_counter_name=str(fields.get("sku_counter_name", "sku")),
            checksum=compute_checksum(dict(fields)),
        )
    except TypeError as exc:
        raise ValueError(f"Invalid configuration value: {exc}") from exc
    return settings
