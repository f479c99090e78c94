"""
GradingWorkflowService -- the single writer of submission status.

Responsibility:
    Creates submissions and applies validated status transitions: loads
    the submission under a row lock, runs the TransitionValidator, writes
    the new status, the merged payload fields and the transition log entry
    together, and anchors configured statuses on the external ledger.

Architecture position:
    Kernel > Services -- imperative shell around the pure validator.

Invariants enforced:
    - A status change and its transition log entry are flushed in the same
      transaction; a reader never sees one without the other.
    - Only the fields the edge's contract allows are written.
    - uid == id, assigned in the transaction that creates the submission.
    - A proof image is uploaded only for a request the validator accepts
      on an edge that takes one; a rejected request uploads nothing.
    - Anchored transitions write to the ledger before anything is flushed;
      a ledger failure aborts the transition with nothing written.

Failure modes:
    - ConfigurationError: anchored statuses configured without a ledger
      writer (raised at construction).
    - SubmissionNotFoundError: unknown submission id.
    - ProofImageUploadError: upload failed after validation, before any
      write.
    - ExternalLedgerUnavailableError: ledger write failed for an anchored
      status.  The caller's transaction must be rolled back.
    - OrphanedLedgerWriteError: the ledger write succeeded but the flush
      that follows failed; carries the on-chain ``tx_hash``.
    - StorageError: wraps SQLAlchemyError from load or flush; never retried.
    - ImmutabilityViolationError: propagated from the ORM listeners.

Rejections are values: ``apply_transition`` returns them inside a
``TransitionOutcome``; ``transition`` raises ``TransitionRejectedError``.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from grading_kernel.domain.catalog import (
    DEFAULT_CATALOG,
    AuthenticationResult,
    GradingStatus,
    StatusCatalog,
)
from grading_kernel.domain.clock import Clock, SystemClock
from grading_kernel.domain.dtos import (
    NewSubmission,
    RejectionKind,
    SubmissionSnapshot,
    TransitionOutcome,
    TransitionRejection,
    ValidatedTransition,
)
from grading_kernel.domain.payloads import normalize_payload
from grading_kernel.domain.policy import WorkflowPolicy
from grading_kernel.domain.ports import LedgerWriter, ProofImageHost
from grading_kernel.domain.validator import TransitionValidator
from grading_kernel.exceptions import (
    ConfigurationError,
    ExternalLedgerUnavailableError,
    OrphanedLedgerWriteError,
    ProofImageUploadError,
    StorageError,
    SubmissionNotFoundError,
    TransitionRejectedError,
)
from grading_kernel.logging_config import LogContext, get_logger
from grading_kernel.models.submission import Submission
from grading_kernel.models.transition_log import SubmissionTransition
from grading_kernel.services.base import BaseService
from grading_kernel.services.transition_log import TransitionLogService
from grading_kernel.utils.hashing import to_json_safe

logger = get_logger("services.workflow_engine")

PROOF_IMAGE_FIELD = "slabbing_proof_image"

# Stands in for the proof image URL while the request is validated ahead of
# the upload; never written.
PENDING_UPLOAD = "pending-upload://slabbing_proof_image"

INTAKE_FIELDS = (
    "card_name",
    "card_set",
    "card_year",
    "condition",
    "image_url",
    "customer_name",
    "customer_id_type",
    "customer_id_number",
    "customer_contact",
    "customer_email",
)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class GradingWorkflowService(BaseService[Submission]):
    """
    Applies status transitions to grading submissions.

    Contract:
        One writer per submission at a time: the submission row is locked
        with SELECT ... FOR UPDATE for the duration of the caller's
        transaction.

    Non-goals:
        - Does NOT commit or roll back; the caller owns the transaction.
        - Does NOT compute grades; it validates and stores what it is given.
        - Does NOT retry storage or ledger failures.
    """

    def __init__(
        self,
        session: Session,
        policy: WorkflowPolicy | None = None,
        clock: Clock | None = None,
        ledger_writer: LedgerWriter | None = None,
        image_host: ProofImageHost | None = None,
        catalog: StatusCatalog | None = None,
    ):
        super().__init__(session)
        self._policy = policy or WorkflowPolicy()
        if self._policy.anchored_statuses and ledger_writer is None:
            anchored = ", ".join(
                sorted(f"'{status.value}'" for status in self._policy.anchored_statuses)
            )
            raise ConfigurationError(
                "ledger.anchored_statuses",
                f"{anchored} must be written to the ledger but no ledger writer is configured",
            )
        self._clock = clock or SystemClock()
        self._catalog = catalog or DEFAULT_CATALOG
        self._validator = TransitionValidator(self._catalog, self._policy.grade_scale)
        self._transition_log = TransitionLogService(session, self._clock)
        self._ledger_writer = ledger_writer
        self._image_host = image_host

    @property
    def policy(self) -> WorkflowPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def create_submission(
        self,
        new_submission: NewSubmission,
        actor_id: str | None = None,
    ) -> SubmissionSnapshot:
        """
        Insert a submission in ``Submitted`` and write its creation entry.

        Postconditions:
            - ``snapshot.uid == snapshot.id``.
            - The transition log holds exactly one entry (seq 1,
              from_status None).
        """
        status = self._catalog.initial_status
        now = self._clock.now()
        intake = {name: getattr(new_submission, name) for name in INTAKE_FIELDS}

        try:
            submission = Submission(
                status=status.value,
                submitted_at=now,
                updated_at=now,
                transition_count=0,
                **intake,
            )
            self.session.add(submission)
            self.session.flush()
            submission.uid = submission.id
        except SQLAlchemyError as exc:
            logger.error("submission_create_failed", exc_info=True)
            raise StorageError("create_submission") from exc

        with LogContext.bind(
            submission_id=submission.id, actor_id=actor_id, operation="create_submission"
        ):
            tx_hash = None
            if self._policy.is_anchored(status):
                tx_hash = self._record_on_ledger(submission.id, status, intake)

            try:
                submission.tx_hash = tx_hash
                submission.transition_count = 1
                self._transition_log.append(
                    submission_id=submission.id,
                    from_status=None,
                    to_status=status,
                    fields=intake,
                    actor_id=actor_id,
                    tx_hash=tx_hash,
                    occurred_at=now,
                )
                self.session.flush()
            except SQLAlchemyError as exc:
                raise self._storage_failure(
                    "create_submission", submission.id, status, tx_hash
                ) from exc

            logger.info(
                "submission_created",
                extra={"status": status.value, "anchored": tx_hash is not None},
            )
        return submission.to_dto()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        submission_id: int,
        target_status: GradingStatus | str | None = None,
        payload: Mapping[str, Any] | None = None,
        auth_result: AuthenticationResult | str | None = None,
        actor_id: str | None = None,
        proof_image: bytes | None = None,
        proof_image_filename: str | None = None,
    ) -> TransitionOutcome:
        """
        Validate and apply one status change.

        Returns:
            ``TransitionOutcome`` holding either the updated snapshot and
            its log entry, or the rejection (nothing written).

        ``proof_image`` bytes are uploaded only once the request has passed
        validation with the image URL deferred, and only when the edge
        takes a proof image (``Slabbing -> Ready for Return``).

        Raises:
            SubmissionNotFoundError, ProofImageUploadError,
            ExternalLedgerUnavailableError, OrphanedLedgerWriteError,
            StorageError.
        """
        with LogContext.bind(
            submission_id=submission_id, actor_id=actor_id, operation="apply_transition"
        ):
            submission = self._load_for_update(submission_id)
            snapshot = submission.to_dto()
            result = self._validate(
                snapshot,
                target_status,
                dict(payload or {}),
                auth_result,
                proof_image,
                proof_image_filename,
            )

            if isinstance(result, TransitionRejection):
                logger.info(
                    "transition_rejected",
                    extra={
                        "from_status": snapshot.status.value,
                        "to_status": str(_column_value(target_status)),
                        "rejection_kind": result.kind.value,
                        "rejection_code": result.code,
                        "field": result.field,
                    },
                )
                return TransitionOutcome.rejected(result)

            tx_hash = None
            if self._policy.is_anchored(result.to_status):
                tx_hash = self._record_on_ledger(
                    submission.id, result.to_status, result.fields_to_merge
                )

            entry = self._persist(submission, result, actor_id, tx_hash)

            logger.info(
                "transition_applied",
                extra={
                    "from_status": result.from_status.value,
                    "to_status": result.to_status.value,
                    "seq": entry.seq,
                    "fields": sorted(result.fields_to_merge),
                    "anchored": tx_hash is not None,
                },
            )
            return TransitionOutcome.accepted(submission.to_dto(), entry.to_dto())

    def transition(
        self,
        submission_id: int,
        target_status: GradingStatus | str | None = None,
        payload: Mapping[str, Any] | None = None,
        auth_result: AuthenticationResult | str | None = None,
        actor_id: str | None = None,
        proof_image: bytes | None = None,
        proof_image_filename: str | None = None,
    ) -> TransitionOutcome:
        """
        Same as ``apply_transition`` but raises on rejection.

        Raises:
            TransitionRejectedError: carrying the ``TransitionRejection``.
        """
        outcome = self.apply_transition(
            submission_id,
            target_status,
            payload=payload,
            auth_result=auth_result,
            actor_id=actor_id,
            proof_image=proof_image,
            proof_image_filename=proof_image_filename,
        )
        if outcome.rejection is not None:
            raise TransitionRejectedError(submission_id, outcome.rejection)
        return outcome

    def upload_proof_image(self, data: bytes, filename: str | None = None) -> str:
        """
        Upload a slabbing proof photo and return its URL.

        Raises:
            ProofImageUploadError: no host configured, or the host failed.
        """
        if self._image_host is None:
            raise ProofImageUploadError("no image host configured")
        if not data:
            raise ProofImageUploadError("image data is empty")
        try:
            url = self._image_host.upload(data, filename)
        except ProofImageUploadError:
            logger.error("proof_image_upload_failed", exc_info=True)
            raise
        logger.info("proof_image_uploaded", extra={"size_bytes": len(data)})
        return url

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_update(self, submission_id: int) -> Submission:
        try:
            submission = self.session.execute(
                select(Submission)
                .where(Submission.id == submission_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("submission_load_failed", exc_info=True)
            raise StorageError("load_submission", submission_id) from exc

        if submission is None:
            logger.info("submission_not_found")
            raise SubmissionNotFoundError(submission_id)
        return submission

    def _validate(
        self,
        snapshot: SubmissionSnapshot,
        target_status: GradingStatus | str | None,
        request: dict[str, Any],
        auth_result: AuthenticationResult | str | None,
        proof_image: bytes | None,
        proof_image_filename: str | None,
    ) -> ValidatedTransition | TransitionRejection:
        if proof_image is None:
            return self._validator.validate(snapshot, target_status, request, auth_result)

        if PROOF_IMAGE_FIELD in normalize_payload(request):
            return _unexpected_proof_image(
                snapshot,
                "A proof image was supplied both as a URL and as an upload",
            )

        deferred = {**request, PROOF_IMAGE_FIELD: PENDING_UPLOAD}
        result = self._validator.validate(snapshot, target_status, deferred, auth_result)
        if isinstance(result, TransitionRejection):
            return result
        if result.fields_to_merge.get(PROOF_IMAGE_FIELD) != PENDING_UPLOAD:
            return _unexpected_proof_image(
                snapshot,
                f"'{result.from_status.value}' -> '{result.to_status.value}' "
                "does not take a proof image",
                to_status=result.to_status,
            )

        # Accepted with the URL deferred: upload, then check the real URL
        request = {
            **request,
            PROOF_IMAGE_FIELD: self.upload_proof_image(proof_image, proof_image_filename),
        }
        return self._validator.validate(snapshot, target_status, request, auth_result)

    def _record_on_ledger(
        self,
        submission_id: int,
        status: GradingStatus,
        fields: Mapping[str, Any],
    ) -> str:
        try:
            tx_hash = self._ledger_writer.record_transition(
                submission_id, status.value, to_json_safe(dict(fields))
            )
        except ExternalLedgerUnavailableError:
            logger.error(
                "ledger_write_failed",
                extra={"status": status.value},
                exc_info=True,
            )
            raise
        logger.info("ledger_write_succeeded", extra={"status": status.value, "tx_hash": tx_hash})
        return tx_hash

    def _persist(
        self,
        submission: Submission,
        validated: ValidatedTransition,
        actor_id: str | None,
        tx_hash: str | None,
    ) -> SubmissionTransition:
        now = self._clock.now()
        logged_fields: dict[str, Any] = dict(validated.fields_to_merge)
        for name in validated.cleared_fields:
            logged_fields[name] = None

        try:
            submission.status = validated.to_status.value
            for name, value in validated.fields_to_merge.items():
                setattr(submission, name, _column_value(value))
            for name in validated.cleared_fields:
                setattr(submission, name, None)
            if tx_hash is not None:
                submission.tx_hash = tx_hash
            submission.transition_count = (submission.transition_count or 0) + 1
            submission.updated_at = now

            entry = self._transition_log.append(
                submission_id=submission.id,
                from_status=validated.from_status,
                to_status=validated.to_status,
                fields=logged_fields,
                actor_id=actor_id,
                tx_hash=tx_hash,
                occurred_at=now,
            )
            self.session.flush()
        except SQLAlchemyError as exc:
            raise self._storage_failure(
                "apply_transition", submission.id, validated.to_status, tx_hash
            ) from exc
        return entry

    @staticmethod
    def _storage_failure(
        operation: str,
        submission_id: int,
        to_status: GradingStatus,
        tx_hash: str | None,
    ) -> StorageError:
        """Build (and log) the error for a failed flush; call inside ``except``."""
        if tx_hash is None:
            logger.error(
                "transition_storage_failed",
                extra={"to_status": to_status.value},
                exc_info=True,
            )
            return StorageError(operation, submission_id)
        logger.error(
            "ledger_write_orphaned",
            extra={"to_status": to_status.value, "tx_hash": tx_hash},
            exc_info=True,
        )
        return OrphanedLedgerWriteError(operation, submission_id, to_status.value, tx_hash)


def _unexpected_proof_image(
    snapshot: SubmissionSnapshot,
    message: str,
    to_status: GradingStatus | None = None,
) -> TransitionRejection:
    return TransitionRejection(
        kind=RejectionKind.INVALID_TRANSITION,
        code="UNEXPECTED_PROOF_IMAGE",
        message=message,
        field=PROOF_IMAGE_FIELD,
        from_status=snapshot.status,
        to_status=to_status,
    )
