"""
SubmissionSelector -- read access to submissions and their transition log.

Returns ``SubmissionSnapshot`` / ``TransitionLogEntry`` DTOs, never ORM rows.
"""

from sqlalchemy import func, select

from grading_kernel.domain.catalog import GradingStatus, parse_status
from grading_kernel.domain.dtos import SubmissionSnapshot, TransitionLogEntry
from grading_kernel.exceptions import SubmissionNotFoundError
from grading_kernel.models.submission import Submission
from grading_kernel.models.transition_log import SubmissionTransition
from grading_kernel.selectors.base import BaseSelector


class SubmissionSelector(BaseSelector[Submission]):
    """Queries for the admin dashboard and certificate lookup."""

    def get(self, submission_id: int) -> SubmissionSnapshot:
        """
        Raises:
            SubmissionNotFoundError: if no submission has this id.
        """
        submission = self.session.get(Submission, submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission.to_dto()

    def find(self, submission_id: int) -> SubmissionSnapshot | None:
        submission = self.session.get(Submission, submission_id)
        return submission.to_dto() if submission is not None else None

    def get_by_uid(self, uid: int) -> SubmissionSnapshot:
        """Certificate lookup by public uid."""
        submission = self.session.execute(
            select(Submission).where(Submission.uid == uid)
        ).scalar_one_or_none()
        if submission is None:
            raise SubmissionNotFoundError(uid)
        return submission.to_dto()

    def exists(self, submission_id: int) -> bool:
        return self.session.execute(
            select(Submission.id).where(Submission.id == submission_id)
        ).first() is not None

    def list_submissions(
        self,
        status: GradingStatus | str | None = None,
        limit: int | None = None,
    ) -> list[SubmissionSnapshot]:
        """Newest first, optionally filtered by status."""
        query = select(Submission).order_by(Submission.id.desc())
        if status is not None:
            query = query.where(Submission.status == parse_status(status).value)
        if limit is not None:
            query = query.limit(limit)
        return [s.to_dto() for s in self.session.execute(query).scalars().all()]

    def status_counts(self) -> dict[GradingStatus, int]:
        """Number of submissions per status; statuses with none are reported as 0."""
        rows = self.session.execute(
            select(Submission.status, func.count(Submission.id)).group_by(Submission.status)
        ).all()
        counts = {status: 0 for status in GradingStatus}
        for status_value, count in rows:
            counts[parse_status(status_value)] += count
        return counts

    def transitions(self, submission_id: int) -> list[TransitionLogEntry]:
        """Transition log entries in seq order."""
        entries = self.session.execute(
            select(SubmissionTransition)
            .where(SubmissionTransition.submission_id == submission_id)
            .order_by(SubmissionTransition.seq)
        ).scalars().all()
        return [e.to_dto() for e in entries]
