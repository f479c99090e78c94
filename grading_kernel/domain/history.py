"""
History projection values and the pure merge.

Responsibility:
    Turns transition log entries and external ledger events into one
    chronologically ordered sequence of ``HistoryEvent`` values.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The
    ``HistorySelector`` gathers the inputs; this module only orders them.

Ordering:
    Ascending timestamp.  Equal timestamps put internal entries first,
    then order by internal ``seq``, then by external ``block_number``
    and ``log_index``, then by input position.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from grading_kernel.domain.dtos import TransitionLogEntry


class HistoryEventType(str, Enum):
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    STATUS_UPDATE = "Status Update"


class EventSource(str, Enum):
    INTERNAL = "internal"
    LEDGER = "ledger"


class LedgerEventKind(str, Enum):
    """Event kinds emitted by the attestation contract."""

    SUBMITTED = "submitted"
    APPROVED = "approved"


LEDGER_EVENT_TYPES: dict[LedgerEventKind, HistoryEventType] = {
    LedgerEventKind.SUBMITTED: HistoryEventType.SUBMITTED,
    LedgerEventKind.APPROVED: HistoryEventType.APPROVED,
}


@dataclass(frozen=True)
class LedgerEvent:
    """One event read from the external append-only ledger."""

    kind: LedgerEventKind
    submission_id: int
    tx_hash: str
    block_number: int
    timestamp: datetime
    log_index: int = 0
    status: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class HistoryEvent:
    """Read-only history row.  Never stored."""

    type: HistoryEventType
    timestamp: datetime
    source: EventSource
    status: str | None = None
    hash: str | None = None
    block_number: int | None = None
    seq: int | None = None
    detail: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "status": self.status,
            "hash": self.hash,
            "timestamp": self.timestamp.isoformat(),
            "block_number": self.block_number,
            "source": self.source.value,
            "seq": self.seq,
            "detail": dict(self.detail),
        }


@dataclass(frozen=True)
class MissingFact:
    """Explicitly declared missing data. Never inferred or invented."""

    fact: str
    expected_source: str
    correlation_key: str | None
    detail: str | None


@dataclass(frozen=True)
class SubmissionHistory:
    """Merged history of one submission plus any declared gap."""

    submission_id: int
    events: tuple[HistoryEvent, ...]
    ledger_gap: MissingFact | None = None

    @property
    def is_complete(self) -> bool:
        return self.ledger_gap is None

    def to_dict(self) -> dict[str, Any]:
        gap = None
        if self.ledger_gap is not None:
            gap = {
                "fact": self.ledger_gap.fact,
                "expected_source": self.ledger_gap.expected_source,
                "correlation_key": self.ledger_gap.correlation_key,
                "detail": self.ledger_gap.detail,
            }
        return {
            "submission_id": self.submission_id,
            "events": [e.to_dict() for e in self.events],
            "ledger_gap": gap,
        }


def status_update_event(entry: TransitionLogEntry) -> HistoryEvent:
    detail: dict[str, Any] = {}
    if entry.from_status is not None:
        detail["from_status"] = entry.from_status.value
    if entry.actor_id is not None:
        detail["actor_id"] = entry.actor_id
    return HistoryEvent(
        type=HistoryEventType.STATUS_UPDATE,
        timestamp=entry.occurred_at,
        source=EventSource.INTERNAL,
        status=entry.to_status.value,
        hash=entry.tx_hash,
        seq=entry.seq,
        detail=detail,
    )


def ledger_history_event(event: LedgerEvent) -> HistoryEvent:
    return HistoryEvent(
        type=LEDGER_EVENT_TYPES[event.kind],
        timestamp=event.timestamp,
        source=EventSource.LEDGER,
        status=event.status,
        hash=event.tx_hash,
        block_number=event.block_number,
        detail=dict(event.data),
    )


def merge_history(
    internal: Iterable[TransitionLogEntry],
    *external: Iterable[LedgerEvent],
) -> tuple[HistoryEvent, ...]:
    """
    Merge internal transition log entries with external ledger sequences.

    Deterministic for identical inputs; timestamps in the result are
    non-decreasing.
    """
    keyed: list[tuple[tuple, HistoryEvent]] = []
    position = 0
    for entry in internal:
        keyed.append(((entry.occurred_at, 0, entry.seq, 0, 0, position), status_update_event(entry)))
        position += 1
    for sequence in external:
        for event in sequence:
            keyed.append(
                (
                    (event.timestamp, 1, 0, event.block_number, event.log_index, position),
                    ledger_history_event(event),
                )
            )
            position += 1
    keyed.sort(key=lambda item: item[0])
    return tuple(event for _key, event in keyed)
