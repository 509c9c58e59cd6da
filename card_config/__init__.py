"""
card_config -- single public entrypoint for pipeline configuration.

Responsibility:
    Provides the ONLY way to obtain pipeline configuration at runtime
    through ``get_pipeline_config()``.  Returns a frozen ``PipelineConfig``.

Architecture position:
    Configuration -- YAML-driven.  This package sits above ``card_kernel``;
    the kernel never imports from ``card_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``InvalidConfigError`` -- a value is missing, mistyped or out of range.

Audit relevance:
    Every successful ``get_pipeline_config()`` call emits a
    ``PIPELINE_CONFIG_TRACE`` log entry containing the config id, version,
    checksum and effective limits.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from card_config.loader import load_yaml_file, parse_pipeline_config
from card_config.schema import PipelineConfig

_logger = logging.getLogger("card_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = ["PipelineConfig", "get_pipeline_config", "DEFAULT_CONFIG_PATH"]


def get_pipeline_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> PipelineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to sets/default.yaml.
        overrides: Field values that take precedence over the file,
            keyed by PipelineConfig field name.

    Raises:
        FileNotFoundError: If config_path does not exist.
        InvalidConfigError: If any value fails validation.
    """
    data = load_yaml_file(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    config = parse_pipeline_config(data, overrides)

    _logger.info(
        "PIPELINE_CONFIG_TRACE",
        extra={
            "trace_type": "PIPELINE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "chunk_size": config.chunk_size,
            "retry_limit": config.retry_limit,
            "skip_limit": config.skip_limit,
        },
    )
    return config
