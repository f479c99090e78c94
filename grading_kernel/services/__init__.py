"""Write-side services of the grading kernel."""

from grading_kernel.services.transition_log import TransitionLogService
from grading_kernel.services.workflow_engine import GradingWorkflowService

__all__ = [
    "GradingWorkflowService",
    "TransitionLogService",
]
