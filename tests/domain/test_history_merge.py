"""Pure history merge over transition log entries and ledger events."""

from datetime import datetime, timedelta, timezone

from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.domain.dtos import TransitionLogEntry
from grading_kernel.domain.history import (
    EventSource,
    HistoryEventType,
    LedgerEvent,
    LedgerEventKind,
    MissingFact,
    SubmissionHistory,
    merge_history,
)

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def entry(seq: int, to_status: GradingStatus, at: datetime, tx_hash: str | None = None):
    return TransitionLogEntry(
        submission_id=1,
        seq=seq,
        from_status=None if seq == 1 else GradingStatus.SUBMITTED,
        to_status=to_status,
        occurred_at=at,
        actor_id="grader-7",
        payload={},
        payload_hash="p" * 64,
        hash="h" * 64,
        tx_hash=tx_hash,
    )


def ledger(kind: LedgerEventKind, at: datetime, block: int, log_index: int = 0):
    return LedgerEvent(
        kind=kind,
        submission_id=1,
        tx_hash=f"0x{block:064x}",
        block_number=block,
        timestamp=at,
        log_index=log_index,
        data={"amount": "0.01"},
    )


class TestMergeHistory:
    def test_interleaves_by_timestamp(self):
        internal = [
            entry(1, GradingStatus.SUBMITTED, T0),
            entry(2, GradingStatus.AUTHENTICATION_IN_PROGRESS, T0 + timedelta(minutes=10)),
        ]
        submitted = [ledger(LedgerEventKind.SUBMITTED, T0 + timedelta(minutes=1), 100)]
        approved = [ledger(LedgerEventKind.APPROVED, T0 + timedelta(minutes=20), 140)]

        events = merge_history(internal, submitted, approved)

        assert [e.type for e in events] == [
            HistoryEventType.STATUS_UPDATE,
            HistoryEventType.SUBMITTED,
            HistoryEventType.STATUS_UPDATE,
            HistoryEventType.APPROVED,
        ]
        assert [e.source for e in events] == [
            EventSource.INTERNAL,
            EventSource.LEDGER,
            EventSource.INTERNAL,
            EventSource.LEDGER,
        ]

    def test_internal_first_on_equal_timestamps(self):
        events = merge_history(
            [entry(1, GradingStatus.SUBMITTED, T0)],
            [ledger(LedgerEventKind.SUBMITTED, T0, 100)],
        )
        assert events[0].source == EventSource.INTERNAL
        assert events[1].source == EventSource.LEDGER

    def test_equal_ledger_timestamps_order_by_block_then_log_index(self):
        events = merge_history(
            [],
            [
                ledger(LedgerEventKind.SUBMITTED, T0, 101, 3),
                ledger(LedgerEventKind.SUBMITTED, T0, 100, 7),
                ledger(LedgerEventKind.SUBMITTED, T0, 101, 1),
            ],
        )
        assert [(e.block_number, e.hash) for e in events] == [
            (100, f"0x{100:064x}"),
            (101, f"0x{101:064x}"),
            (101, f"0x{101:064x}"),
        ]

    def test_status_update_fields(self):
        (event,) = merge_history([entry(2, GradingStatus.SLABBING, T0, tx_hash="0xabc")])
        assert event.status == "Slabbing"
        assert event.hash == "0xabc"
        assert event.seq == 2
        assert event.block_number is None
        assert event.detail == {"from_status": "Submitted", "actor_id": "grader-7"}

    def test_ledger_event_fields(self):
        (event,) = merge_history([], [ledger(LedgerEventKind.APPROVED, T0, 120)])
        assert event.type == HistoryEventType.APPROVED
        assert event.block_number == 120
        assert event.seq is None
        assert event.detail == {"amount": "0.01"}

    def test_deterministic(self):
        internal = [entry(i, GradingStatus.SUBMITTED, T0) for i in range(1, 4)]
        external = [ledger(LedgerEventKind.SUBMITTED, T0, 100 + i) for i in range(3)]
        assert merge_history(internal, external) == merge_history(internal, external)

    def test_empty(self):
        assert merge_history([]) == ()


class TestSubmissionHistory:
    def test_complete_without_gap(self):
        history = SubmissionHistory(submission_id=1, events=())
        assert history.is_complete
        assert history.to_dict() == {"submission_id": 1, "events": [], "ledger_gap": None}

    def test_gap_serialized(self):
        gap = MissingFact(
            fact="ledger_events",
            expected_source="ledger",
            correlation_key="1",
            detail="ledger event source not configured",
        )
        history = SubmissionHistory(
            submission_id=1,
            events=merge_history([entry(1, GradingStatus.SUBMITTED, T0)]),
            ledger_gap=gap,
        )
        data = history.to_dict()
        assert not history.is_complete
        assert data["ledger_gap"]["detail"] == "ledger event source not configured"
        assert data["events"][0]["timestamp"] == T0.isoformat()
        assert data["events"][0]["type"] == "Status Update"
