"""
HistorySelector -- merged audit history of one submission.

Responsibility:
    Reads the submission's transition log and the external ledger's
    ``submitted`` / ``approved`` events, and merges them into one
    chronological sequence.

Architecture position:
    Kernel > Selectors -- read-only.  Ordering lives in the pure
    ``grading_kernel.domain.history.merge_history``.

Degradation:
    The ledger is optional.  When no event source is configured, or the
    source raises ``ExternalLedgerUnavailableError`` (the JSON-RPC source
    also raises it for malformed replies), the history contains
    internal entries only and ``ledger_gap`` declares the missing facts.
    Nothing is inferred or invented for the gap.

Never cached; every call re-derives from the store and the ledger.
"""

from grading_kernel.domain.history import (
    LedgerEvent,
    LedgerEventKind,
    MissingFact,
    SubmissionHistory,
    merge_history,
)
from grading_kernel.domain.ports import LedgerEventSource
from grading_kernel.exceptions import (
    ExternalLedgerUnavailableError,
    SubmissionNotFoundError,
)
from grading_kernel.logging_config import LogContext, get_logger
from grading_kernel.models.submission import Submission
from grading_kernel.selectors.base import BaseSelector
from grading_kernel.selectors.submission_selector import SubmissionSelector

logger = get_logger("selectors.history")

LEDGER_EVENT_KINDS = (LedgerEventKind.SUBMITTED, LedgerEventKind.APPROVED)


class HistorySelector(BaseSelector[Submission]):
    """Assembles ``SubmissionHistory`` values."""

    def __init__(self, session, ledger_source: LedgerEventSource | None = None):
        super().__init__(session)
        self._ledger_source = ledger_source
        self._submissions = SubmissionSelector(session)

    def get_history(self, submission_id: int) -> SubmissionHistory:
        """
        Raises:
            SubmissionNotFoundError: if the submission does not exist.
        """
        if not self._submissions.exists(submission_id):
            raise SubmissionNotFoundError(submission_id)

        internal = self._submissions.transitions(submission_id)
        with LogContext.bind(submission_id=submission_id, operation="get_history"):
            external, gap = self._ledger_events(submission_id)
        events = merge_history(internal, *external)

        logger.debug(
            "history_assembled",
            extra={
                "submission_id": submission_id,
                "internal_count": len(internal),
                "ledger_count": sum(len(seq) for seq in external),
                "ledger_gap": gap is not None,
            },
        )
        return SubmissionHistory(
            submission_id=submission_id,
            events=events,
            ledger_gap=gap,
        )

    def _ledger_events(
        self, submission_id: int
    ) -> tuple[list[list[LedgerEvent]], MissingFact | None]:
        if self._ledger_source is None:
            return [], MissingFact(
                fact="ledger_events",
                expected_source="ledger",
                correlation_key=str(submission_id),
                detail="ledger event source not configured",
            )

        sequences: list[list[LedgerEvent]] = []
        for kind in LEDGER_EVENT_KINDS:
            try:
                sequences.append(list(self._ledger_source.query_events(submission_id, kind)))
            except ExternalLedgerUnavailableError as exc:
                logger.warning(
                    "history_ledger_degraded",
                    extra={
                        "submission_id": submission_id,
                        "event_kind": kind.value,
                        "reason": exc.reason,
                    },
                )
                return [], MissingFact(
                    fact="ledger_events",
                    expected_source="ledger",
                    correlation_key=str(submission_id),
                    detail=f"ledger unavailable while reading '{kind.value}' events: {exc.reason}",
                )
        return sequences, None
