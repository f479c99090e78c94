"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or rollback themselves.  The caller
    (``session_scope()``, the CLI, or a test harness) owns commit/rollback,
    so a status change and its transition log entry land together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from grading_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``grading_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
