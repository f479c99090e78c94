"""
Structured logging tests.

Verifies:
- Each record is one JSON line with the envelope fields
- Submission, actor and operation context flows into every record
- Kernel exceptions expose their code and public attributes
- Context binding nests and restores around service calls
"""

import json
import logging
from decimal import Decimal
from io import StringIO

import pytest

from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.exceptions import (
    ExternalLedgerUnavailableError,
    OrphanedLedgerWriteError,
)
from grading_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def log_lines():
    """Configure logging onto a buffer; call the result to read it back."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level="DEBUG")

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


logger = get_logger("tests.logging")


class TestRecordShape:
    def test_envelope(self, log_lines):
        logger.info("submission_created")

        (record,) = log_lines()
        assert record["level"] == "INFO"
        assert record["message"] == "submission_created"
        assert record["logger"] == "grading_kernel.tests.logging"
        assert record["ts"].endswith("+00:00")

    def test_extras_are_serialized(self, log_lines):
        logger.info(
            "transition_applied",
            extra={
                "to_status": GradingStatus.SLABBING,
                "grade": Decimal("9.5"),
                "fields": {"grade_edges", "grade"},
                "seq": 4,
            },
        )

        (record,) = log_lines()
        assert record["to_status"] == "Slabbing"
        assert record["grade"] == "9.5"
        assert record["fields"] == ["grade", "grade_edges"]
        assert record["seq"] == 4

    def test_bound_context_wins_over_extra(self, log_lines):
        with LogContext.bind(submission_id=7, operation="apply_transition"):
            logger.info("transition_rejected", extra={"submission_id": 8, "rejection_code": "INVALID_TRANSITION"})

        (record,) = log_lines()
        assert record["submission_id"] == "7"
        assert record["operation"] == "apply_transition"
        assert record["rejection_code"] == "INVALID_TRANSITION"

    def test_no_context_outside_a_call(self, log_lines):
        logger.info("config_loaded")

        (record,) = log_lines()
        assert not {"submission_id", "actor_id", "operation"} & set(record)

    def test_ledger_error_attributes(self, log_lines):
        try:
            raise ExternalLedgerUnavailableError("eth_getLogs", "HTTP 503")
        except ExternalLedgerUnavailableError:
            logger.warning("ledger_history_unavailable", exc_info=True)

        (record,) = log_lines()
        assert record["exc_type"] == "ExternalLedgerUnavailableError"
        assert record["exc_code"] == "EXTERNAL_LEDGER_UNAVAILABLE"
        assert record["exc_operation"] == "eth_getLogs"
        assert record["exc_reason"] == "HTTP 503"
        assert "Traceback" in record["traceback"]

    def test_orphaned_write_carries_tx_hash(self, log_lines):
        tx_hash = "0x" + "ab" * 32
        try:
            raise OrphanedLedgerWriteError("apply_transition", 12, "Completed", tx_hash)
        except OrphanedLedgerWriteError:
            logger.error("ledger_write_orphaned", exc_info=True)

        (record,) = log_lines()
        assert record["exc_code"] == "ORPHANED_LEDGER_WRITE"
        assert record["exc_tx_hash"] == tx_hash
        assert record["exc_to_status"] == "Completed"
        assert tx_hash in record["exc_message"]

    def test_level_name_is_accepted(self):
        stream = StringIO()
        configure_logging(stream=stream, level="warning")
        logger.info("dropped")
        logger.warning("kept")

        lines = stream.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["kept"]


class TestLogContext:
    def test_values_become_strings(self):
        LogContext.set(submission_id=42, actor_id="grader-1")
        assert LogContext.get_all() == {"submission_id": "42", "actor_id": "grader-1"}

    def test_enum_values_are_unwrapped(self):
        LogContext.set(operation=GradingStatus.COMPLETED)
        assert LogContext.get_all()["operation"] == "Completed"

    def test_unknown_field_is_refused(self):
        with pytest.raises(TypeError, match="tx_hash"):
            LogContext.set(tx_hash="0x01")

    def test_none_keeps_existing_value(self):
        LogContext.set(actor_id="grader-1")
        LogContext.set(actor_id=None, submission_id=3)
        assert LogContext.get_all() == {"submission_id": "3", "actor_id": "grader-1"}

    def test_bind_restores_outer_call(self):
        LogContext.set(correlation_id="req-1")
        with LogContext.bind(submission_id=5, operation="apply_transition"):
            with LogContext.bind(operation="get_history"):
                assert LogContext.get_all()["operation"] == "get_history"
                assert LogContext.get_all()["submission_id"] == "5"
            assert LogContext.get_all()["operation"] == "apply_transition"
        assert LogContext.get_all() == {"correlation_id": "req-1"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(submission_id=9):
                raise RuntimeError("flush failed")
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="req-1", actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestServiceRecords:
    def test_transition_records_carry_call_context(self, log_lines, make_submission, workflow):
        snapshot = make_submission()
        workflow.apply_transition(
            snapshot.id, "Authentication in Progress", actor_id="grader-7"
        )
        workflow.apply_transition(snapshot.id, "Completed", actor_id="grader-7")

        records = {r["message"]: r for r in log_lines()}
        applied = records["transition_applied"]
        assert applied["operation"] == "apply_transition"
        assert applied["submission_id"] == str(snapshot.id)
        assert applied["actor_id"] == "grader-7"
        assert applied["to_status"] == "Authentication in Progress"

        rejected = records["transition_rejected"]
        assert rejected["rejection_code"] == "INVALID_TRANSITION"
        assert rejected["operation"] == "apply_transition"
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_idempotent(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("grading_kernel").handlers) == 1

    def test_handler_gets_json_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_reset_allows_reconfigure(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("grading_kernel").handlers == []
        configure_logging(stream=StringIO(), level=logging.ERROR)
        assert logging.getLogger("grading_kernel").level == logging.ERROR
