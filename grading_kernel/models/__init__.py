"""SQLAlchemy ORM models for the grading kernel."""

from grading_kernel.models.submission import Submission
from grading_kernel.models.transition_log import SubmissionTransition

__all__ = [
    "Submission",
    "SubmissionTransition",
]
