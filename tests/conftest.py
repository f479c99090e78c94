"""
Pytest fixtures for the grading kernel test suite.

Provides:
- A database engine and per-test sessions with automatic rollback
- Workflow service and selector fixtures wired to a DeterministicClock
- In-memory fakes for the ledger and the proof image host
- Submission factories that walk a submission along the workflow

Environment Variables:
- DATABASE_URL: connection URL of the test database.  Defaults to an
  in-memory SQLite database; set a PostgreSQL URL to exercise row locks
  and JSONB.
"""

import json
import logging
import os
from collections.abc import Generator
from datetime import datetime
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from grading_kernel.db.engine import build_engine, create_tables, drop_tables
from grading_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from grading_kernel.domain.catalog import (
    BRANCHES,
    TRUNK,
    GradingStatus,
    ReturnMethod,
)
from grading_kernel.domain.clock import DeterministicClock
from grading_kernel.domain.dtos import NewSubmission, SubmissionSnapshot
from grading_kernel.domain.history import LedgerEvent, LedgerEventKind
from grading_kernel.domain.policy import WorkflowPolicy
from grading_kernel.exceptions import (
    ExternalLedgerUnavailableError,
    ProofImageUploadError,
)
from grading_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from grading_kernel.selectors.history_selector import HistorySelector
from grading_kernel.selectors.submission_selector import SubmissionSelector
from grading_kernel.services.transition_log import TransitionLogService
from grading_kernel.services.workflow_engine import GradingWorkflowService

DEFAULT_TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_ACTOR_ID = "grader-001"

GRADES = {
    "grade": "9.5",
    "grade_corners": "9",
    "grade_edges": "9.5",
    "grade_surface": "10",
    "grade_centering": "8.5",
}

PROOF_IMAGE_URL = "https://images.test/proof/slab-front.jpg"

DELIVERY = {
    "tracking_provider": "DHL",
    "tracking_number": "JD014600006281230704",
    "delivery_address": "221B Baker Street, London",
}


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture grading_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.apply_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "transition_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("grading_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records
    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if get_database_url().startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """One engine for the whole test session."""
    eng = build_engine(get_database_url(), echo=False, pool_size=5, max_overflow=5)
    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables(db_engine)
    create_tables(db_engine)
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables(db_engine)


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Any ``session.commit()`` inside the test releases a savepoint; it
      does NOT actually commit to the database
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime.fromisoformat("2024-03-01T09:00:00+00:00"))


# =============================================================================
# Collaborator fakes
# =============================================================================


class FakeLedgerWriter:
    """Records ledger writes in memory; ``fail`` makes every write raise."""

    def __init__(self):
        self.calls: list[tuple[int, str, dict]] = []
        self.fail = False

    def record_transition(self, submission_id, status, fields):
        if self.fail:
            raise ExternalLedgerUnavailableError("record_transition", "node unreachable")
        self.calls.append((submission_id, status, dict(fields)))
        return "0x" + format(len(self.calls), "064x")


class FakeLedgerEventSource:
    """Serves preloaded ledger events; ``fail_on`` makes one kind raise."""

    def __init__(self):
        self.events: list[LedgerEvent] = []
        self.fail_on: LedgerEventKind | None = None
        self.queries: list[tuple[int, LedgerEventKind]] = []

    def add(self, event: LedgerEvent) -> None:
        self.events.append(event)

    def query_events(self, submission_id, kind):
        self.queries.append((submission_id, kind))
        if self.fail_on == kind:
            raise ExternalLedgerUnavailableError("eth_getLogs", "HTTP 503")
        return [
            e for e in self.events
            if e.submission_id == submission_id and e.kind == kind
        ]


class FakeImageHost:
    """Stores uploads in memory and hands back predictable URLs."""

    def __init__(self):
        self.uploads: list[tuple[bytes, str | None]] = []
        self.fail = False

    def upload(self, data, filename=None):
        if self.fail:
            raise ProofImageUploadError("HTTP 500: storage unavailable")
        self.uploads.append((data, filename))
        return f"https://images.test/proof/{filename or 'proof.jpg'}"


@pytest.fixture
def ledger_writer():
    return FakeLedgerWriter()


@pytest.fixture
def ledger_source():
    return FakeLedgerEventSource()


@pytest.fixture
def image_host():
    return FakeImageHost()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def policy():
    return WorkflowPolicy()


@pytest.fixture
def workflow(session, policy, deterministic_clock, ledger_writer, image_host):
    return GradingWorkflowService(
        session,
        policy=policy,
        clock=deterministic_clock,
        ledger_writer=ledger_writer,
        image_host=image_host,
    )


@pytest.fixture
def submission_selector(session):
    return SubmissionSelector(session)


@pytest.fixture
def history_selector(session, ledger_source):
    return HistorySelector(session, ledger_source)


@pytest.fixture
def transition_log(session, deterministic_clock):
    return TransitionLogService(session, deterministic_clock)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_submission(workflow, deterministic_clock):
    """Create a submission in ``Submitted`` and return its snapshot."""

    def _make(**overrides) -> SubmissionSnapshot:
        fields = {
            "card_name": "Charizard",
            "card_set": "Base Set",
            "card_year": 1999,
            "condition": "Near Mint",
            "customer_name": "Ash Ketchum",
            "customer_email": "ash@example.com",
        }
        fields.update(overrides)
        deterministic_clock.tick()
        return workflow.create_submission(NewSubmission(**fields), actor_id=TEST_ACTOR_ID)

    return _make


def step_request(
    current: GradingStatus,
    target: GradingStatus,
    return_method: ReturnMethod,
) -> dict:
    """Keyword arguments for ``transition`` that make ``current -> target`` valid."""
    if current == GradingStatus.AUTHENTICATION_IN_PROGRESS:
        result = "Fake" if target == GradingStatus.REJECTED_COUNTERFEIT else "Authentic"
        return {"auth_result": result}
    if target == GradingStatus.SLABBING:
        return {"payload": dict(GRADES)}
    if target == GradingStatus.READY_FOR_RETURN:
        return {
            "payload": {
                "slabbing_proof_image": PROOF_IMAGE_URL,
                "return_method": return_method.value,
            }
        }
    if target == GradingStatus.SHIPPED:
        return {"payload": dict(DELIVERY)}
    return {}


def workflow_path(
    target: GradingStatus,
    return_method: ReturnMethod = ReturnMethod.DELIVERY,
) -> list[GradingStatus]:
    """Statuses from ``Submitted`` up to and including ``target``."""
    if target == GradingStatus.REJECTED_COUNTERFEIT:
        return [
            GradingStatus.SUBMITTED,
            GradingStatus.AUTHENTICATION_IN_PROGRESS,
            GradingStatus.REJECTED_COUNTERFEIT,
        ]
    path = list(TRUNK) + list(BRANCHES[return_method])
    return path[: path.index(target) + 1]


@pytest.fixture
def advance_to(workflow, deterministic_clock):
    """Walk an existing submission forward to ``target``."""

    def _advance(
        submission: SubmissionSnapshot,
        target: GradingStatus,
        return_method: ReturnMethod = ReturnMethod.DELIVERY,
    ) -> SubmissionSnapshot:
        path = workflow_path(target, return_method)
        start = path.index(submission.status)
        snapshot = submission
        for current, nxt in zip(path[start:], path[start + 1:]):
            deterministic_clock.tick()
            outcome = workflow.transition(
                snapshot.id,
                nxt,
                actor_id=TEST_ACTOR_ID,
                **step_request(current, nxt, return_method),
            )
            snapshot = outcome.submission
        return snapshot

    return _advance


@pytest.fixture
def submission_at(make_submission, advance_to):
    """Create a submission and walk it straight to ``target``."""

    def _at(
        target: GradingStatus,
        return_method: ReturnMethod = ReturnMethod.DELIVERY,
        **overrides,
    ) -> SubmissionSnapshot:
        return advance_to(make_submission(**overrides), target, return_method)

    return _at
