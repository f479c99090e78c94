"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable values that cross the service boundary:
    NewSubmission (intake input), SubmissionSnapshot (read model of one
    submission), TransitionLogEntry (one row of the transition log),
    TransitionRejection / ValidatedTransition (validator output) and
    TransitionOutcome (engine output).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ORM models convert to these through ``to_dto()``; domain logic never
    sees an ORM entity.

Failure modes:
    - ValueError on NewSubmission without a card name.
    - ValueError on TransitionOutcome carrying both or neither of
      submission and rejection.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from grading_kernel.domain.catalog import (
    AuthenticationResult,
    GradingStatus,
    ReturnMethod,
)
from grading_kernel.domain.payloads import TransitionPayload


@dataclass(frozen=True)
class NewSubmission:
    """Intake form data for a card being sent in for grading."""

    card_name: str
    card_set: str | None = None
    card_year: int | None = None
    condition: str | None = None
    image_url: str | None = None
    customer_name: str | None = None
    customer_id_type: str | None = None
    customer_id_number: str | None = None
    customer_contact: str | None = None
    customer_email: str | None = None

    def __post_init__(self) -> None:
        if not self.card_name or not self.card_name.strip():
            raise ValueError("NewSubmission requires a card_name")


@dataclass(frozen=True)
class SubmissionSnapshot:
    """
    Immutable view of one submission at a point in time.

    Contract:
        ``uid == id`` for every committed submission.  Grade fields are all
        None before ``Slabbing`` and all set afterwards.
    """

    id: int
    uid: int
    status: GradingStatus
    return_method: ReturnMethod | None = None
    authentication_result: AuthenticationResult | None = None
    inspection_metadata: dict[str, Any] | None = None
    grade: Decimal | None = None
    grade_corners: Decimal | None = None
    grade_edges: Decimal | None = None
    grade_surface: Decimal | None = None
    grade_centering: Decimal | None = None
    slabbing_proof_image: str | None = None
    tracking_provider: str | None = None
    tracking_number: str | None = None
    delivery_address: str | None = None
    tx_hash: str | None = None
    card_name: str | None = None
    card_set: str | None = None
    card_year: int | None = None
    condition: str | None = None
    image_url: str | None = None
    customer_name: str | None = None
    customer_id_type: str | None = None
    customer_id_number: str | None = None
    customer_contact: str | None = None
    customer_email: str | None = None
    submitted_at: datetime | None = None
    updated_at: datetime | None = None
    transition_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for JSON output; enums become their values."""
        result: dict[str, Any] = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            result[name] = value
        return result


@dataclass(frozen=True)
class TransitionLogEntry:
    """One persisted status change.  ``from_status`` is None for creation."""

    submission_id: int
    seq: int
    from_status: GradingStatus | None
    to_status: GradingStatus
    occurred_at: datetime
    actor_id: str | None
    payload: Mapping[str, Any]
    payload_hash: str
    hash: str
    prev_hash: str | None = None
    tx_hash: str | None = None


class RejectionKind(str, Enum):
    """Category of a refused transition request."""

    INVALID_TRANSITION = "INVALID_TRANSITION"
    MISSING_PAYLOAD_FIELD = "MISSING_PAYLOAD_FIELD"
    TERMINAL_STATE = "TERMINAL_STATE"


@dataclass(frozen=True)
class TransitionRejection:
    """
    A refused transition, returned as a value.

    Contract:
        ``message`` is actionable and safe to show to the operator: it names
        the offending field or the allowed next statuses.

    Non-goals:
        - Does NOT raise.  ``TransitionRejectedError`` wraps it for callers
          that prefer exceptions.
    """

    kind: RejectionKind
    code: str
    message: str
    field: str | None = None
    from_status: GradingStatus | None = None
    to_status: GradingStatus | None = None
    allowed: tuple[GradingStatus, ...] = ()

    def to_public_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }
        if self.field is not None:
            result["field"] = self.field
        if self.from_status is not None:
            result["from_status"] = self.from_status.value
        if self.to_status is not None:
            result["to_status"] = self.to_status.value
        if self.allowed:
            result["allowed"] = [s.value for s in self.allowed]
        return result


@dataclass(frozen=True)
class ValidatedTransition:
    """An accepted transition ready to persist.

    ``fields_to_merge`` holds only the columns the edge's contract may
    write; ``cleared_fields`` are reset to None.
    """

    from_status: GradingStatus
    to_status: GradingStatus
    payload: TransitionPayload
    fields_to_merge: Mapping[str, Any] = field(default_factory=dict)
    cleared_fields: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "fields_to_merge", MappingProxyType(dict(self.fields_to_merge))
        )


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of ``apply_transition``: exactly one of submission or rejection."""

    submission: SubmissionSnapshot | None = None
    rejection: TransitionRejection | None = None
    log_entry: TransitionLogEntry | None = None

    def __post_init__(self) -> None:
        if (self.submission is None) == (self.rejection is None):
            raise ValueError(
                "TransitionOutcome requires exactly one of submission or rejection"
            )

    @property
    def succeeded(self) -> bool:
        return self.rejection is None

    def __bool__(self) -> bool:
        return self.succeeded

    @classmethod
    def accepted(
        cls,
        submission: SubmissionSnapshot,
        log_entry: TransitionLogEntry | None = None,
    ) -> TransitionOutcome:
        return cls(submission=submission, log_entry=log_entry)

    @classmethod
    def rejected(cls, rejection: TransitionRejection) -> TransitionOutcome:
        return cls(rejection=rejection)
