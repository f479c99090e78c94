"""
Typed Exception Hierarchy for the Grading Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API handlers, the operator CLI, tests) branch on the error CATEGORY,
never on message text:

    try:
        outcome = workflow.transition(submission_id, "Slabbing", payload)
    except TransitionRejectedError as e:      # caller fixes input
        return {"error": e.code, "message": e.message, "field": e.field}
    except SubmissionNotFoundError as e:      # surfaced as-is
        return {"error": e.code}
    except StorageError as e:                 # generic, details logged
        return {"error": e.code, "message": e.public_message}

Every exception carries a ``code`` class attribute (machine-readable,
API-safe) and its structured context as attributes.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GradingKernelError (base)
    |
    +-- SubmissionError
    |   +-- SubmissionNotFoundError
    |   +-- TransitionRejectedError
    |
    +-- StorageError
    |   +-- OrphanedLedgerWriteError
    |
    +-- ExternalServiceError
    |   +-- ExternalLedgerUnavailableError
    |   +-- ProofImageUploadError
    |
    +-- AuditError
    |   +-- TransitionChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|-----------------------------------
Submission      | NOT_FOUND                    | Submission id/uid doesn't exist
                | <rejection code>             | Business rule rejection (raised
                |                              | only by the raising API variant)
----------------|------------------------------|-----------------------------------
Storage         | STORAGE_ERROR                | Persistence failure (wrapped)
                | ORPHANED_LEDGER_WRITE        | Ledger written, status not stored
----------------|------------------------------|-----------------------------------
External        | EXTERNAL_LEDGER_UNAVAILABLE  | Ledger write/query failed
                | UPLOAD_ERROR                 | Proof image upload failed
----------------|------------------------------|-----------------------------------
Audit           | TRANSITION_CHAIN_BROKEN      | Transition log hash mismatch
----------------|------------------------------|-----------------------------------
Immutability    | IMMUTABILITY_VIOLATION       | Write-once field or log row changed
----------------|------------------------------|-----------------------------------
Configuration   | CONFIGURATION_ERROR          | Invalid YAML configuration

===============================================================================
BUSINESS RULE REJECTIONS ARE VALUES
===============================================================================

The transition validator does NOT raise for expected rule violations.  It
returns a ``TransitionRejection`` value (see ``domain/dtos.py``).  The
workflow service hands that value back to the caller untouched;
``TransitionRejectedError`` exists only for callers that opt into the
raising API (``GradingWorkflowService.transition``).

===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from grading_kernel.domain.dtos import TransitionRejection


GENERIC_FAILURE_MESSAGE = "The request could not be completed. Please try again later."


class GradingKernelError(Exception):
    """
    Base exception for all grading kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "GRADING_KERNEL_ERROR"

    @property
    def public_message(self) -> str:
        """Message safe to show to an end user."""
        return str(self)


# Submission-related exceptions


class SubmissionError(GradingKernelError):
    """Base exception for submission workflow errors."""

    code: str = "SUBMISSION_ERROR"


class SubmissionNotFoundError(SubmissionError):
    """Submission with given id (or uid) was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, submission_id: int | str):
        self.submission_id = submission_id
        super().__init__(f"Submission not found: {submission_id}")


class TransitionRejectedError(SubmissionError):
    """
    A requested transition violated a workflow rule.

    Wraps a ``TransitionRejection`` value.  The instance ``code`` is the
    rejection's specific code (e.g. ``MISSING_PAYLOAD_FIELD``).
    """

    code: str = "TRANSITION_REJECTED"

    def __init__(self, submission_id: int, rejection: TransitionRejection):
        self.submission_id = submission_id
        self.rejection = rejection
        self.kind = rejection.kind.value
        self.code = rejection.code
        self.field = rejection.field
        self.message = rejection.message
        super().__init__(
            f"Transition rejected for submission {submission_id}: {rejection.message}"
        )

    @property
    def public_message(self) -> str:
        return self.message


# Storage exceptions


class StorageError(GradingKernelError):
    """
    Underlying persistence failure.

    Propagated to the caller, never retried by the kernel: retrying a
    non-idempotent transition could double-apply side effects.
    """

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, submission_id: int | None = None):
        self.operation = operation
        self.submission_id = submission_id
        super().__init__(
            f"Storage failure during {operation}"
            + (f" (submission {submission_id})" if submission_id is not None else "")
        )

    @property
    def public_message(self) -> str:
        return GENERIC_FAILURE_MESSAGE


class OrphanedLedgerWriteError(StorageError):
    """
    The ledger accepted a write but the matching status change was not stored.

    The on-chain attestation ``tx_hash`` for ``to_status`` exists with no
    internal record behind it.  Operators reconcile it by hand; the kernel
    never retries the transition.
    """

    code: str = "ORPHANED_LEDGER_WRITE"

    def __init__(
        self,
        operation: str,
        submission_id: int | None,
        to_status: str,
        tx_hash: str,
    ):
        super().__init__(operation, submission_id)
        self.to_status = to_status
        self.tx_hash = tx_hash

    def __str__(self) -> str:
        return (
            f"{super().__str__()}; ledger transaction {self.tx_hash} for "
            f"'{self.to_status}' was recorded but not stored"
        )


# External collaborator exceptions


class ExternalServiceError(GradingKernelError):
    """Base exception for external collaborator failures."""

    code: str = "EXTERNAL_SERVICE_ERROR"

    @property
    def public_message(self) -> str:
        return GENERIC_FAILURE_MESSAGE


class ExternalLedgerUnavailableError(ExternalServiceError):
    """
    The ledger collaborator could not be reached or returned an error.

    For an anchored transition this aborts the whole transition.  History
    queries catch it and degrade to internal-only events.
    """

    code: str = "EXTERNAL_LEDGER_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Ledger unavailable during {operation}: {reason}")


class ProofImageUploadError(ExternalServiceError):
    """Proof image upload failed; blocks image-mandatory transitions."""

    code: str = "UPLOAD_ERROR"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Proof image upload failed: {reason}")


# Audit exceptions


class AuditError(GradingKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class TransitionChainBrokenError(AuditError):
    """Transition log hash chain validation failed."""

    code: str = "TRANSITION_CHAIN_BROKEN"

    def __init__(
        self,
        submission_id: int,
        seq: int,
        expected_hash: str,
        actual_hash: str,
    ):
        self.submission_id = submission_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Transition chain broken for submission {submission_id} at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityError(GradingKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify a write-once field or an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(GradingKernelError):
    """Workflow configuration is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
