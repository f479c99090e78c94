"""
Module: grading_kernel.models.submission
Responsibility: ORM persistence for grading submissions.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain value types only.

Invariants enforced:
    - uid == id for every committed submission (set by the workflow engine
      in the creating transaction).
    - status changes only through GradingWorkflowService.
    - Write-once fields (uid, submitted_at, grades, return_method,
      authentication_result, inspection_metadata) and terminal status
      are guarded by db/immutability.py.

Failure modes:
    - ImmutabilityViolationError on overwriting a write-once field.
    - ValueError from to_dto() if the stored status is not a catalog value.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from grading_kernel.db.base import Base, BigIntegerType, JSONType
from grading_kernel.domain.catalog import (
    AuthenticationResult,
    ReturnMethod,
    parse_status,
)
from grading_kernel.domain.dtos import SubmissionSnapshot


class Submission(Base):
    """
    One card sent in for grading.

    Contract:
        Rows are created in ``Submitted`` and then only moved along the
        catalog's transition table.  Columns the workflow never writes
        (card and customer metadata) are captured at intake.
    """

    __tablename__ = "submissions"
    __table_args__ = (
        Index("idx_submission_status", "status"),
        Index("idx_submission_submitted_at", "submitted_at"),
    )

    # Public certificate number; equals id
    uid: Mapped[int | None] = mapped_column(BigIntegerType, unique=True, nullable=True)

    status: Mapped[str] = mapped_column(String(40), nullable=False)

    return_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    authentication_result: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Condition readings recorded on the way to Grading Assigned
    inspection_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    grade: Mapped[Decimal | None] = mapped_column(nullable=True)
    grade_corners: Mapped[Decimal | None] = mapped_column(nullable=True)
    grade_edges: Mapped[Decimal | None] = mapped_column(nullable=True)
    grade_surface: Mapped[Decimal | None] = mapped_column(nullable=True)
    grade_centering: Mapped[Decimal | None] = mapped_column(nullable=True)

    slabbing_proof_image: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Delivery branch only
    tracking_provider: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Latest ledger transaction, when the last anchored transition wrote one
    tx_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)

    card_name: Mapped[str] = mapped_column(String(200), nullable=False)
    card_set: Mapped[str | None] = mapped_column(String(200), nullable=True)
    card_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    condition: Mapped[str | None] = mapped_column(String(100), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_id_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_id_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_contact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(200), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    # Number of transition log entries written for this submission
    transition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Submission {self.id} {self.status}>"

    def to_dto(self) -> SubmissionSnapshot:
        return SubmissionSnapshot(
            id=self.id,
            uid=self.uid if self.uid is not None else self.id,
            status=parse_status(self.status),
            return_method=(
                ReturnMethod(self.return_method) if self.return_method else None
            ),
            authentication_result=(
                AuthenticationResult(self.authentication_result)
                if self.authentication_result
                else None
            ),
            inspection_metadata=(
                dict(self.inspection_metadata) if self.inspection_metadata is not None else None
            ),
            grade=self.grade,
            grade_corners=self.grade_corners,
            grade_edges=self.grade_edges,
            grade_surface=self.grade_surface,
            grade_centering=self.grade_centering,
            slabbing_proof_image=self.slabbing_proof_image,
            tracking_provider=self.tracking_provider,
            tracking_number=self.tracking_number,
            delivery_address=self.delivery_address,
            tx_hash=self.tx_hash,
            card_name=self.card_name,
            card_set=self.card_set,
            card_year=self.card_year,
            condition=self.condition,
            image_url=self.image_url,
            customer_name=self.customer_name,
            customer_id_type=self.customer_id_type,
            customer_id_number=self.customer_id_number,
            customer_contact=self.customer_contact,
            customer_email=self.customer_email,
            submitted_at=self.submitted_at,
            updated_at=self.updated_at,
            transition_count=self.transition_count,
        )
