"""
grading_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.

Architecture position:
    Configuration -- sits above ``grading_kernel``.  The kernel never
    imports from ``grading_config``; ``grading_config.bridges`` translates
    the parsed configuration into kernel inputs.

Environment:
    GRADING_CONFIG          path of the YAML file (default: bundled
                            ``sets/default.yaml``)
    DATABASE_URL            overrides ``database.url``
    CLOUDINARY_API_SECRET   overrides ``image_host.api_secret``

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``GRADING_CONFIG_TRACE`` log entry containing the config id, version,
    source path and checksum.
"""

from __future__ import annotations

import copy
import logging
import os
from collections.abc import Mapping
from pathlib import Path

from grading_config.bridges import (
    build_image_host,
    build_ledger_event_source,
    build_workflow_policy,
)
from grading_config.loader import load_yaml_file, parse_config
from grading_config.schema import WorkflowConfig

_logger = logging.getLogger("grading_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

_ENV_OVERRIDES = (
    ("DATABASE_URL", "database", "url"),
    ("CLOUDINARY_API_SECRET", "image_host", "api_secret"),
)


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Falls back to ``GRADING_CONFIG``,
            then to the bundled default.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigurationError: if the file is missing or invalid.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get("GRADING_CONFIG") or DEFAULT_CONFIG_PATH)

    data = copy.deepcopy(load_yaml_file(path))
    for variable, section, key in _ENV_OVERRIDES:
        value = env.get(variable)
        if value:
            data.setdefault(section, {})
            if data[section] is None:
                data[section] = {}
            data[section][key] = value

    config = parse_config(data, source=str(path))

    _logger.info(
        "GRADING_CONFIG_TRACE",
        extra={
            "trace_type": "GRADING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "config_source": config.source,
            "checksum": config.checksum,
            "ledger_enabled": config.ledger.enabled,
            "image_host_enabled": config.image_host.enabled,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "WorkflowConfig",
    "build_image_host",
    "build_ledger_event_source",
    "build_workflow_policy",
    "get_active_config",
]
