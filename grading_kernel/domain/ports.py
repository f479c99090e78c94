"""
Collaborator ports.

Protocols for the external systems the kernel talks to.  Services and
selectors depend only on these; concrete adapters live in
``grading_kernel.integrations`` and tests pass in-memory fakes.

Every port raises a ``grading_kernel.exceptions.ExternalServiceError``
subclass when the remote side is unreachable or answers with an error.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from grading_kernel.domain.history import LedgerEvent, LedgerEventKind


@runtime_checkable
class LedgerEventSource(Protocol):
    """
    Append-only feed of attestation events for a submission.

    Raises ``ExternalLedgerUnavailableError`` when the feed cannot be read.
    """

    def query_events(
        self, submission_id: int, kind: LedgerEventKind
    ) -> Sequence[LedgerEvent]: ...


@runtime_checkable
class LedgerWriter(Protocol):
    """
    Records a status change on the external ledger and returns its tx hash.

    Raises ``ExternalLedgerUnavailableError`` on failure.
    """

    def record_transition(
        self,
        submission_id: int,
        status: str,
        fields: Mapping[str, Any],
    ) -> str: ...


@runtime_checkable
class ProofImageHost(Protocol):
    """
    Third-party image hosting.

    Raises ``ProofImageUploadError`` on failure.
    """

    def upload(self, data: bytes, filename: str | None = None) -> str: ...
