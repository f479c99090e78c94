"""Utility functions for the grading kernel."""

from grading_kernel.utils.hashing import (
    canonicalize_json,
    hash_payload,
    hash_transition,
    to_json_safe,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "hash_transition",
    "to_json_safe",
]
