"""
Module: grading_kernel.models.transition_log
Responsibility: ORM persistence for the per-submission transition log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    - Rows are append-only; no UPDATE or DELETE (db/immutability.py).
    - (submission_id, seq) is unique; seq starts at 1 with the creation
      entry and increases by one per transition.
    - hash = H(submission_id | seq | from_status | to_status | payload_hash
      | prev_hash).  Validated by TransitionLogService.validate_chain().

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a duplicate (submission_id, seq), which means two
      writers raced on the same submission.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from grading_kernel.db.base import Base, BigIntegerType, JSONType
from grading_kernel.domain.catalog import parse_status
from grading_kernel.domain.dtos import TransitionLogEntry


class SubmissionTransition(Base):
    """
    One status change of one submission, chained by hash.

    Guarantees:
        - prev_hash is None only for the creation entry (seq 1).
        - from_status is None only for the creation entry.
    """

    __tablename__ = "submission_transitions"
    __table_args__ = (
        UniqueConstraint("submission_id", "seq", name="uq_transition_submission_seq"),
        Index("idx_transition_submission", "submission_id"),
        Index("idx_transition_occurred", "occurred_at"),
    )

    submission_id: Mapped[int] = mapped_column(
        BigIntegerType,
        ForeignKey("submissions.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(nullable=False)

    from_status: Mapped[str | None] = mapped_column(String(40), nullable=True)
    to_status: Mapped[str] = mapped_column(String(40), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Fields the transition merged into the submission
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Ledger transaction written for this transition, if anchored
    tx_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<SubmissionTransition {self.submission_id}#{self.seq} -> {self.to_status}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def to_dto(self) -> TransitionLogEntry:
        return TransitionLogEntry(
            submission_id=self.submission_id,
            seq=self.seq,
            from_status=parse_status(self.from_status) if self.from_status else None,
            to_status=parse_status(self.to_status),
            occurred_at=self.occurred_at,
            actor_id=self.actor_id,
            payload=dict(self.payload or {}),
            payload_hash=self.payload_hash,
            hash=self.hash,
            prev_hash=self.prev_hash,
            tx_hash=self.tx_hash,
        )
