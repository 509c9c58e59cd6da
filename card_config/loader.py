"""
Configuration Loader (``card_config.loader``).

Responsibility
--------------
Loads the pipeline YAML file and parses it into a typed
``card_config.schema.PipelineConfig``.  The single public entry point for
runtime config is ``card_config.get_pipeline_config()``.

Invariants enforced
-------------------
* Every value is validated on parse; an out-of-range or mistyped value
  raises ``InvalidConfigError`` naming the field.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from card_kernel.exceptions import InvalidConfigError

from card_config.schema import PipelineConfig

PIPELINE_FIELDS = (
    "chunk_size",
    "retry_limit",
    "skip_limit",
    "retry_backoff_seconds",
    "processing_date",
    "database_url",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _int_field(name: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigError(name, value, "must be an integer")
    if value < minimum:
        raise InvalidConfigError(name, value, f"must be >= {minimum}")
    return value


def _float_field(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(name, value, "must be a number")
    if value < 0:
        raise InvalidConfigError(name, value, "must be >= 0")
    return float(value)


def _date_field(name: str, value: Any) -> date | None:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise InvalidConfigError(name, value, "must be an ISO date") from None


def _url_field(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidConfigError(name, value, "must be a non-empty string")
    return value


def flatten_config(data: dict[str, Any]) -> dict[str, Any]:
    """Map the YAML layout onto PipelineConfig field names."""
    pipeline = data.get("pipeline") or {}
    database = data.get("database") or {}
    flat = {key: pipeline[key] for key in PIPELINE_FIELDS if key in pipeline}
    if "url" in database:
        flat["database_url"] = database["url"]
    return flat


def parse_pipeline_config(
    data: dict[str, Any], overrides: dict[str, Any] | None = None,
) -> PipelineConfig:
    """
    Parse and validate a pipeline configuration.

    ``overrides`` uses PipelineConfig field names and wins over the file.

    Raises:
        InvalidConfigError: on an unknown override or invalid value.
    """
    values = flatten_config(data)
    for key, value in (overrides or {}).items():
        if key not in PIPELINE_FIELDS:
            raise InvalidConfigError(key, value, "unknown configuration field")
        values[key] = value

    defaults = PipelineConfig()
    return PipelineConfig(
        chunk_size=_int_field(
            "chunk_size", values.get("chunk_size", defaults.chunk_size), 1,
        ),
        retry_limit=_int_field(
            "retry_limit", values.get("retry_limit", defaults.retry_limit), 0,
        ),
        skip_limit=_int_field(
            "skip_limit", values.get("skip_limit", defaults.skip_limit), 0,
        ),
        retry_backoff_seconds=_float_field(
            "retry_backoff_seconds",
            values.get("retry_backoff_seconds", defaults.retry_backoff_seconds),
        ),
        processing_date=_date_field(
            "processing_date", values.get("processing_date"),
        ),
        database_url=_url_field("database_url", values.get("database_url")),
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        checksum=compute_checksum({**data, "overrides": overrides or {}}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
