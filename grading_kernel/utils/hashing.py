"""
Deterministic hashing utilities.

All hashing in the grading kernel must be deterministic and reproducible.
This module provides the canonical hashing functions used by the
transition log hash chain.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Remove trailing zeros so 9.50 and 9.5 hash identically
        return format(obj.normalize(), "f")
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Produces a deterministic JSON representation:
    - Keys are sorted alphabetically
    - No whitespace
    - Consistent handling of special types (Decimal, datetime, UUID, Enum)
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: dict[str, Any]) -> dict[str, Any]:
    """Round-trip a payload through canonical JSON so it can be stored in a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_transition(
    submission_id: int,
    seq: int,
    from_status: str | None,
    to_status: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chain hash of one transition log entry.

    hash = H(submission_id | seq | from_status | to_status | payload_hash | prev_hash)

    ``prev_hash`` is None only for the creation entry of a submission.
    """
    parts = [
        str(submission_id),
        str(seq),
        from_status or "",
        to_status,
        payload_hash,
        prev_hash or "",
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
