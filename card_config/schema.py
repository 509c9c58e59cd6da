"""
Configuration schema (``card_config.schema``).

Frozen dataclasses describing the posting pipeline's configuration.  Parsed
from YAML by ``card_config.loader``; obtained at runtime only through
``card_config.get_pipeline_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class PipelineConfig:
    """Chunking, retry and skip settings for a posting run."""

    chunk_size: int = 1000
    retry_limit: int = 3
    skip_limit: int = 10
    retry_backoff_seconds: float = 0.5
    processing_date: date | None = None
    database_url: str | None = None
    config_id: str = "card-posting-default"
    version: int = 1
    checksum: str = ""
