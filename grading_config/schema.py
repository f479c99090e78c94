"""
WorkflowConfig schema.

Frozen dataclasses for the human-authored YAML configuration.  The loader
parses YAML into these types; ``grading_config.bridges`` turns them into
kernel inputs (``WorkflowPolicy``, integration adapters).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.domain.history import LedgerEventKind


@dataclass(frozen=True)
class GradeScaleDef:
    minimum: Decimal = Decimal("1")
    maximum: Decimal = Decimal("10")
    step: Decimal | None = Decimal("0.5")


@dataclass(frozen=True)
class LedgerDef:
    """External ledger access.  Disabled unless explicitly enabled."""

    enabled: bool = False
    rpc_url: str | None = None
    contract_address: str | None = None
    anchored_statuses: tuple[GradingStatus, ...] = ()
    # Keccak-256 topic hash of each event signature
    event_topics: dict[LedgerEventKind, str] = field(default_factory=dict)
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class ImageHostDef:
    enabled: bool = False
    cloud_name: str | None = None
    api_key: str | None = None
    api_secret: str | None = None
    folder: str | None = None
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class DatabaseDef:
    url: str = "sqlite:///grading.db"
    echo: bool = False


@dataclass(frozen=True)
class WorkflowConfig:
    """
    Complete runtime configuration.

    ``checksum`` is the SHA-256 of the parsed source document and
    identifies the configuration in logs.
    """

    config_id: str
    version: int
    grade_scale: GradeScaleDef
    ledger: LedgerDef
    image_host: ImageHostDef
    database: DatabaseDef
    source: str = "<memory>"
    checksum: str = ""
