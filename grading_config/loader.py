"""
Configuration Loader (``grading_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``grading_config.schema`` dataclasses.  The single public entry point for
runtime config is ``grading_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending key.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` (``yaml.YAMLError`` chained).
* Unknown status, bad number, inverted grade bounds -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from grading_config.schema import (
    DatabaseDef,
    GradeScaleDef,
    ImageHostDef,
    LedgerDef,
    WorkflowConfig,
)
from grading_kernel.domain.catalog import parse_status
from grading_kernel.domain.history import LedgerEventKind
from grading_kernel.exceptions import ConfigurationError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or not a mapping at the top level.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(str(path), "file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, source: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(source, f"'{name}' must be a mapping")
    return value


def _decimal(value: Any, key: str, source: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ConfigurationError(source, f"'{key}' must be a number, got {value!r}") from None


def _positive_float(value: Any, key: str, source: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(source, f"'{key}' must be a number, got {value!r}") from None
    if result <= 0:
        raise ConfigurationError(source, f"'{key}' must be positive")
    return result


def parse_grade_scale(data: dict[str, Any], source: str) -> GradeScaleDef:
    minimum = _decimal(data.get("minimum", 1), "grade_scale.minimum", source)
    maximum = _decimal(data.get("maximum", 10), "grade_scale.maximum", source)
    raw_step = data.get("step", "0.5")
    step = None if raw_step is None else _decimal(raw_step, "grade_scale.step", source)
    if minimum >= maximum:
        raise ConfigurationError(source, "grade_scale.minimum must be below grade_scale.maximum")
    if step is not None and step <= 0:
        raise ConfigurationError(source, "grade_scale.step must be positive")
    return GradeScaleDef(minimum=minimum, maximum=maximum, step=step)


def parse_ledger(data: dict[str, Any], source: str) -> LedgerDef:
    statuses = []
    for raw in data.get("anchored_statuses") or []:
        try:
            statuses.append(parse_status(raw))
        except ValueError:
            raise ConfigurationError(
                source, f"ledger.anchored_statuses: unknown status {raw!r}"
            ) from None

    topics_raw = data.get("event_topics") or {}
    if not isinstance(topics_raw, dict):
        raise ConfigurationError(source, "ledger.event_topics must be a mapping")
    topics = {}
    for key, value in topics_raw.items():
        try:
            kind = LedgerEventKind(key)
        except ValueError:
            raise ConfigurationError(
                source, f"ledger.event_topics: unknown event kind {key!r}"
            ) from None
        if value:
            topics[kind] = str(value)

    ledger = LedgerDef(
        enabled=bool(data.get("enabled", False)),
        rpc_url=data.get("rpc_url"),
        contract_address=data.get("contract_address"),
        anchored_statuses=tuple(statuses),
        event_topics=topics,
        timeout_seconds=_positive_float(
            data.get("timeout_seconds", 10), "ledger.timeout_seconds", source
        ),
    )
    if ledger.enabled:
        if not ledger.rpc_url or not ledger.contract_address:
            raise ConfigurationError(
                source, "ledger.rpc_url and ledger.contract_address are required when enabled"
            )
        missing = [k.value for k in LedgerEventKind if k not in ledger.event_topics]
        if missing:
            raise ConfigurationError(
                source, f"ledger.event_topics missing {', '.join(missing)}"
            )
    return ledger


def parse_image_host(data: dict[str, Any], source: str) -> ImageHostDef:
    host = ImageHostDef(
        enabled=bool(data.get("enabled", False)),
        cloud_name=data.get("cloud_name"),
        api_key=data.get("api_key"),
        api_secret=data.get("api_secret"),
        folder=data.get("folder"),
        timeout_seconds=_positive_float(
            data.get("timeout_seconds", 30), "image_host.timeout_seconds", source
        ),
    )
    if host.enabled and not (host.cloud_name and host.api_key and host.api_secret):
        raise ConfigurationError(
            source,
            "image_host.cloud_name, api_key and api_secret are required when enabled",
        )
    return host


def parse_database(data: dict[str, Any], source: str) -> DatabaseDef:
    url = data.get("url") or DatabaseDef.url
    return DatabaseDef(url=str(url), echo=bool(data.get("echo", False)))


def parse_config(data: dict[str, Any], source: str = "<memory>") -> WorkflowConfig:
    """
    Parse a configuration document.

    Raises:
        ConfigurationError: on any missing or invalid value.
    """
    try:
        version = int(data.get("version", 1))
    except (TypeError, ValueError):
        raise ConfigurationError(source, "'version' must be an integer") from None

    return WorkflowConfig(
        config_id=str(data.get("config_id", "default")),
        version=version,
        grade_scale=parse_grade_scale(_section(data, "grade_scale", source), source),
        ledger=parse_ledger(_section(data, "ledger", source), source),
        image_host=parse_image_host(_section(data, "image_host", source), source),
        database=parse_database(_section(data, "database", source), source),
        source=source,
        checksum=compute_checksum(data),
    )
