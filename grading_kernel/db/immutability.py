"""
ORM-level immutability enforcement for grading records.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, we raise ImmutabilityViolationError and the flush is
aborted. The database is never modified.

Protected entities:

Entity                | When immutable                  | Fields
----------------------|---------------------------------|------------------------------
SubmissionTransition  | ALWAYS (from creation)          | all; no delete
Submission            | once set                        | id, uid, submitted_at, grades,
                      |                                 | return_method,
                      |                                 | authentication_result
Submission            | once status is terminal         | all except updated_at
Submission            | ALWAYS                          | no delete

Usage:

    from grading_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY - never in production):

    from grading_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from grading_kernel.domain.catalog import TERMINAL_STATUSES
from grading_kernel.exceptions import ImmutabilityViolationError
from grading_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Fields that may go from NULL to a value once and never change afterwards
SUBMISSION_WRITE_ONCE_FIELDS = frozenset({
    "id",
    "uid",
    "submitted_at",
    "grade",
    "grade_corners",
    "grade_edges",
    "grade_surface",
    "grade_centering",
    "return_method",
    "authentication_result",
    "inspection_metadata",
})

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_submission_immutability(mapper, connection, target):
    """
    Guard write-once fields and frozen terminal submissions.

    Logic:
        1. A write-once field whose old value was not NULL may not change.
        2. If the status was terminal before this update, nothing but
           updated_at may change.
    """
    from grading_kernel.models.submission import Submission

    if not isinstance(target, Submission):
        return

    for field in SUBMISSION_WRITE_ONCE_FIELDS:
        hist = get_history(target, field)
        if not hist.has_changes():
            continue
        old_values = [v for v in hist.deleted if v is not None]
        if old_values:
            raise _blocked(
                "Submission",
                target.id,
                "UPDATE",
                f"Field '{field}' is write-once and already set",
                field=field,
            )

    status_history = get_history(target, "status")
    if status_history.deleted:
        was_terminal = status_history.deleted[0] in _TERMINAL_VALUES
    else:
        was_terminal = target.status in _TERMINAL_VALUES

    if was_terminal:
        for attr in inspect(target).attrs:
            if attr.key == "updated_at":
                continue
            if attr.history.has_changes():
                raise _blocked(
                    "Submission",
                    target.id,
                    "UPDATE",
                    f"Cannot modify field '{attr.key}' on a submission in a terminal status",
                    field=attr.key,
                )


def _check_submission_delete(mapper, connection, target):
    from grading_kernel.models.submission import Submission

    if not isinstance(target, Submission):
        return

    raise _blocked(
        "Submission",
        target.id,
        "DELETE",
        "Submissions cannot be deleted",
    )


def _check_transition_immutability(mapper, connection, target):
    """Transition log rows are append-only."""
    from grading_kernel.models.transition_log import SubmissionTransition

    if not isinstance(target, SubmissionTransition):
        return

    raise _blocked(
        "SubmissionTransition",
        target.id,
        "UPDATE",
        "Transition log entries are immutable and cannot be modified",
    )


def _check_transition_delete(mapper, connection, target):
    from grading_kernel.models.transition_log import SubmissionTransition

    if not isinstance(target, SubmissionTransition):
        return

    raise _blocked(
        "SubmissionTransition",
        target.id,
        "DELETE",
        "Transition log entries cannot be deleted",
    )


_LISTENERS = (
    ("Submission", "before_update", _check_submission_immutability),
    ("Submission", "before_delete", _check_submission_delete),
    ("SubmissionTransition", "before_update", _check_transition_immutability),
    ("SubmissionTransition", "before_delete", _check_transition_delete),
)


def _models() -> dict:
    from grading_kernel.models import Submission, SubmissionTransition

    return {
        "Submission": Submission,
        "SubmissionTransition": SubmissionTransition,
    }


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent; call once during application initialization.
    """
    models = _models()
    for model_name, event_name, listener in _LISTENERS:
        model = models[model_name]
        if not event.contains(model, event_name, listener):
            event.listen(model, event_name, listener)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    models = _models()
    for model_name, event_name, listener in _LISTENERS:
        model = models[model_name]
        if event.contains(model, event_name, listener):
            event.remove(model, event_name, listener)
