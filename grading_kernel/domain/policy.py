"""
WorkflowPolicy -- the configurable knobs the workflow engine consumes.

The kernel never reads configuration files.  ``grading_config`` builds a
``WorkflowPolicy`` from YAML (see ``grading_config.bridges``); tests build
one directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.domain.validator import GradeScale


@dataclass(frozen=True)
class WorkflowPolicy:
    """
    Grade scale plus the set of statuses whose entry is written to the
    external ledger.
    """

    grade_scale: GradeScale = field(default_factory=GradeScale)
    anchored_statuses: frozenset[GradingStatus] = frozenset()

    def is_anchored(self, status: GradingStatus) -> bool:
        return status in self.anchored_statuses
