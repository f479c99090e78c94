"""
Pure domain layer of the grading kernel.

Everything in this package is free of I/O: the status catalog, typed
transition payloads, the transition validator, history projection and
collaborator protocols.
"""

from grading_kernel.domain.catalog import (
    AuthenticationResult,
    DEFAULT_CATALOG,
    GradingStatus,
    ReturnMethod,
    StatusCatalog,
    TransitionContract,
    parse_status,
)
from grading_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from grading_kernel.domain.dtos import (
    NewSubmission,
    RejectionKind,
    SubmissionSnapshot,
    TransitionLogEntry,
    TransitionOutcome,
    TransitionRejection,
    ValidatedTransition,
)
from grading_kernel.domain.history import (
    EventSource,
    HistoryEvent,
    HistoryEventType,
    LedgerEvent,
    LedgerEventKind,
    MissingFact,
    SubmissionHistory,
    merge_history,
)
from grading_kernel.domain.ports import (
    LedgerEventSource,
    LedgerWriter,
    ProofImageHost,
)
from grading_kernel.domain.policy import WorkflowPolicy
from grading_kernel.domain.validator import GradeScale, TransitionValidator

__all__ = [
    "AuthenticationResult",
    "Clock",
    "DEFAULT_CATALOG",
    "DeterministicClock",
    "EventSource",
    "GradeScale",
    "GradingStatus",
    "HistoryEvent",
    "HistoryEventType",
    "LedgerEvent",
    "LedgerEventKind",
    "LedgerEventSource",
    "LedgerWriter",
    "MissingFact",
    "NewSubmission",
    "ProofImageHost",
    "RejectionKind",
    "ReturnMethod",
    "StatusCatalog",
    "SubmissionHistory",
    "SubmissionSnapshot",
    "SystemClock",
    "TransitionContract",
    "TransitionLogEntry",
    "TransitionOutcome",
    "TransitionRejection",
    "TransitionValidator",
    "ValidatedTransition",
    "WorkflowPolicy",
    "merge_history",
]
