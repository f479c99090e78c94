"""Read-only selectors of the grading kernel."""

from grading_kernel.selectors.history_selector import HistorySelector
from grading_kernel.selectors.submission_selector import SubmissionSelector

__all__ = [
    "HistorySelector",
    "SubmissionSelector",
]
