"""
TransitionLogService -- append-only, hash-chained transition log.

Responsibility:
    Writes one ``SubmissionTransition`` row per status change and
    validates the per-submission hash chain for tamper detection.

Architecture position:
    Kernel > Services -- imperative shell, called by GradingWorkflowService.

Invariants enforced:
    - seq is contiguous per submission, starting at 1 with the creation
      entry.  The caller holds the submission row lock, so reading the
      last seq and inserting the next one cannot interleave with another
      writer for the same submission.
    - hash = H(submission_id | seq | from_status | to_status | payload_hash
      | prev_hash); payload_hash covers the merged fields, the actor,
      the timestamp and the ledger tx hash.
    - Append-only: rows are protected by db/immutability.py.

Failure modes:
    - TransitionChainBrokenError from validate_chain() when a stored hash,
      payload hash, link or sequence number does not match.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from grading_kernel.domain.catalog import GradingStatus
from grading_kernel.domain.clock import Clock, SystemClock
from grading_kernel.exceptions import TransitionChainBrokenError
from grading_kernel.logging_config import get_logger
from grading_kernel.models.transition_log import SubmissionTransition
from grading_kernel.utils.hashing import hash_payload, hash_transition, to_json_safe

logger = get_logger("services.transition_log")


def _hashed_document(
    payload: Mapping[str, Any],
    actor_id: str | None,
    occurred_at: datetime,
    tx_hash: str | None,
) -> dict[str, Any]:
    return {
        "fields": dict(payload),
        "actor_id": actor_id,
        "occurred_at": occurred_at,
        "tx_hash": tx_hash,
    }


class TransitionLogService:
    """
    Creates and validates transition log entries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT decide whether a transition is legal; the validator did.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _last_entry(self, submission_id: int) -> SubmissionTransition | None:
        return self._session.execute(
            select(SubmissionTransition)
            .where(SubmissionTransition.submission_id == submission_id)
            .order_by(SubmissionTransition.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(
        self,
        submission_id: int,
        from_status: GradingStatus | None,
        to_status: GradingStatus,
        fields: Mapping[str, Any] | None = None,
        actor_id: str | None = None,
        tx_hash: str | None = None,
        occurred_at: datetime | None = None,
    ) -> SubmissionTransition:
        """
        Append one chained entry and flush it.

        Postconditions:
            - ``entry.seq == previous.seq + 1`` (1 for the first entry).
            - ``entry.prev_hash == previous.hash`` (None for the first entry).
        """
        last = self._last_entry(submission_id)
        seq = 1 if last is None else last.seq + 1
        prev_hash = None if last is None else last.hash
        occurred_at = occurred_at or self._clock.now()

        payload = to_json_safe(dict(fields or {}))
        payload_hash = hash_payload(
            _hashed_document(payload, actor_id, occurred_at, tx_hash)
        )
        from_value = from_status.value if from_status is not None else None
        entry_hash = hash_transition(
            submission_id=submission_id,
            seq=seq,
            from_status=from_value,
            to_status=to_status.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        entry = SubmissionTransition(
            submission_id=submission_id,
            seq=seq,
            from_status=from_value,
            to_status=to_status.value,
            occurred_at=occurred_at,
            actor_id=actor_id,
            payload=payload,
            tx_hash=tx_hash,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self._session.add(entry)
        self._session.flush()

        logger.debug(
            "transition_logged",
            extra={
                "submission_id": submission_id,
                "seq": seq,
                "to_status": to_status.value,
            },
        )
        return entry

    def validate_chain(self, submission_id: int) -> bool:
        """
        Validate the transition chain of one submission.

        Returns:
            True when every entry's payload hash, entry hash, link and
            sequence number check out (an empty log is valid).

        Raises:
            TransitionChainBrokenError: at the first entry that fails.
        """
        entries = self._session.execute(
            select(SubmissionTransition)
            .where(SubmissionTransition.submission_id == submission_id)
            .order_by(SubmissionTransition.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for expected_seq, entry in enumerate(entries, start=1):
            if entry.seq != expected_seq:
                self._broken(submission_id, entry.seq, f"seq {expected_seq}", f"seq {entry.seq}")

            if entry.prev_hash != prev_hash:
                self._broken(
                    submission_id, entry.seq, prev_hash or "None", entry.prev_hash or "None"
                )

            expected_payload_hash = hash_payload(
                _hashed_document(
                    entry.payload or {}, entry.actor_id, entry.occurred_at, entry.tx_hash
                )
            )
            if entry.payload_hash != expected_payload_hash:
                self._broken(
                    submission_id, entry.seq, expected_payload_hash, entry.payload_hash
                )

            expected_hash = hash_transition(
                submission_id=entry.submission_id,
                seq=entry.seq,
                from_status=entry.from_status,
                to_status=entry.to_status,
                payload_hash=entry.payload_hash,
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected_hash:
                self._broken(submission_id, entry.seq, expected_hash, entry.hash)

            prev_hash = entry.hash

        logger.info(
            "transition_chain_valid",
            extra={"submission_id": submission_id, "entry_count": len(entries)},
        )
        return True

    @staticmethod
    def _broken(submission_id: int, seq: int, expected: str, actual: str) -> None:
        logger.critical(
            "transition_chain_broken",
            extra={"submission_id": submission_id, "seq": seq},
        )
        raise TransitionChainBrokenError(submission_id, seq, expected, actual)
