"""
Transition payloads -- one typed payload per workflow edge.

Each payload type knows how to build itself from the raw mapping an
operator supplies.  Parsing reports the first missing or malformed field
through ``PayloadFieldError`` so the validator can turn it into a
rejection; range checks that depend on configuration (grade scale) stay
in the validator.

Pure domain code.  No I/O.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

# Display-style keys accepted from API and UI callers.
FIELD_ALIASES: dict[str, str] = {
    "authenticationResult": "authentication_result",
    "inspectionMetadata": "inspection_metadata",
    "gradeCorners": "grade_corners",
    "gradeEdges": "grade_edges",
    "gradeSurface": "grade_surface",
    "gradeCentering": "grade_centering",
    "slabbingProofImage": "slabbing_proof_image",
    "returnMethod": "return_method",
    "trackingProvider": "tracking_provider",
    "trackingNumber": "tracking_number",
    "deliveryAddress": "delivery_address",
}


class PayloadFieldError(Exception):
    """A payload field is absent or unusable.

    ``missing`` distinguishes an absent field from one that is present
    but cannot be parsed.
    """

    def __init__(self, field: str, reason: str, missing: bool = True):
        self.field = field
        self.reason = reason
        self.missing = missing
        super().__init__(f"{field}: {reason}")


def normalize_payload(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Map display-style keys to column names.  Blank strings count as absent."""
    if not data:
        return {}
    result: dict[str, Any] = {}
    for key, value in data.items():
        name = FIELD_ALIASES.get(key, key)
        if isinstance(value, str):
            value = value.strip()
            if not value:
                continue
        if value is None:
            continue
        result[name] = value
    return result


def _require_text(data: Mapping[str, Any], name: str) -> str:
    if name not in data:
        raise PayloadFieldError(name, "is required")
    value = data[name]
    if not isinstance(value, str):
        raise PayloadFieldError(name, "must be a string", missing=False)
    return value


def _require_decimal(data: Mapping[str, Any], name: str) -> Decimal:
    if name not in data:
        raise PayloadFieldError(name, "is required")
    value = data[name]
    if isinstance(value, bool):
        raise PayloadFieldError(name, "must be a number", missing=False)
    try:
        # str() first so floats keep their printed value (9.5 not 9.5000000001)
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise PayloadFieldError(name, "must be a number", missing=False) from None
    if not result.is_finite():
        raise PayloadFieldError(name, "must be a finite number", missing=False)
    return result


@dataclass(frozen=True)
class TransitionPayload:
    """Base of all edge payloads."""

    field_names: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TransitionPayload:
        return cls()

    def as_fields(self) -> dict[str, Any]:
        """Non-None payload values keyed by submission column name."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class EmptyPayload(TransitionPayload):
    """Edges that carry no data."""


@dataclass(frozen=True)
class AuthenticationPayload(TransitionPayload):
    authentication_result: str

    field_names: ClassVar[tuple[str, ...]] = ("authentication_result",)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AuthenticationPayload:
        return cls(authentication_result=_require_text(data, "authentication_result"))


@dataclass(frozen=True)
class InspectionPayload(TransitionPayload):
    """Per-side condition readings taken before a grader is assigned.

    Free-form: the kernel stores the object as given and never reads it.
    """

    inspection_metadata: dict[str, Any] | None = None

    field_names: ClassVar[tuple[str, ...]] = ("inspection_metadata",)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> InspectionPayload:
        value = data.get("inspection_metadata")
        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            raise PayloadFieldError("inspection_metadata", "must be a JSON object", missing=False)
        try:
            # Detached plain-JSON copy; rejects NaN and non-JSON values
            copied = json.loads(json.dumps(value, allow_nan=False))
        except (TypeError, ValueError):
            raise PayloadFieldError(
                "inspection_metadata", "must contain only JSON values", missing=False
            ) from None
        return cls(inspection_metadata=copied)


@dataclass(frozen=True)
class GradePayload(TransitionPayload):
    """Overall grade plus the four sub-grades."""

    grade: Decimal
    grade_corners: Decimal
    grade_edges: Decimal
    grade_surface: Decimal
    grade_centering: Decimal

    field_names: ClassVar[tuple[str, ...]] = (
        "grade",
        "grade_corners",
        "grade_edges",
        "grade_surface",
        "grade_centering",
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GradePayload:
        return cls(**{name: _require_decimal(data, name) for name in cls.field_names})


@dataclass(frozen=True)
class SlabbingProofPayload(TransitionPayload):
    """Proof photo of the sealed slab; the return method may be chosen here."""

    slabbing_proof_image: str
    return_method: str | None = None

    field_names: ClassVar[tuple[str, ...]] = ("slabbing_proof_image", "return_method")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SlabbingProofPayload:
        method = data.get("return_method")
        if method is not None and not isinstance(method, str):
            raise PayloadFieldError("return_method", "must be a string", missing=False)
        return cls(
            slabbing_proof_image=_require_text(data, "slabbing_proof_image"),
            return_method=method,
        )


@dataclass(frozen=True)
class DeliveryPayload(TransitionPayload):
    return_method: str
    tracking_provider: str
    tracking_number: str
    delivery_address: str

    field_names: ClassVar[tuple[str, ...]] = (
        "return_method",
        "tracking_provider",
        "tracking_number",
        "delivery_address",
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DeliveryPayload:
        return cls(**{name: _require_text(data, name) for name in cls.field_names})


@dataclass(frozen=True)
class PickupPayload(TransitionPayload):
    return_method: str

    field_names: ClassVar[tuple[str, ...]] = ("return_method",)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PickupPayload:
        return cls(return_method=_require_text(data, "return_method"))
