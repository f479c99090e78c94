"""
TransitionValidator -- pure decision over one requested status change.

Responsibility:
    Given a submission snapshot, a requested target status, a raw payload
    and an optional authentication result, decide whether the transition
    is legal and which submission fields it writes.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumes the
    StatusCatalog; produced values are consumed by the Workflow Engine.

Rules (checked in this order):
    1. Terminal guard.
    2. Authentication step: the target is derived from the result.
    3. Target present.
    4. Same-status requests are duplicates.
    5. Target reachable under the effective return method.
    6. Payload contract of the edge (including the grade scale).

Failure modes:
    Never raises for business rule violations.  Every refusal is a
    ``TransitionRejection`` value.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from grading_kernel.domain.catalog import (
    AUTHENTICATION_OUTCOMES,
    DEFAULT_CATALOG,
    DELIVERY_FIELDS,
    GRADE_FIELDS,
    AuthenticationResult,
    GradingStatus,
    ReturnMethod,
    StatusCatalog,
    parse_status,
)
from grading_kernel.domain.dtos import (
    RejectionKind,
    SubmissionSnapshot,
    TransitionRejection,
    ValidatedTransition,
)
from grading_kernel.domain.payloads import (
    PayloadFieldError,
    TransitionPayload,
    normalize_payload,
)


@dataclass(frozen=True)
class GradeScale:
    """Inclusive grade bounds with an optional increment."""

    minimum: Decimal = Decimal("1")
    maximum: Decimal = Decimal("10")
    step: Decimal | None = Decimal("0.5")

    def __post_init__(self) -> None:
        if self.minimum >= self.maximum:
            raise ValueError(
                f"Grade scale minimum {self.minimum} must be below maximum {self.maximum}"
            )
        if self.step is not None and self.step <= 0:
            raise ValueError(f"Grade scale step must be positive, got {self.step}")

    def contains(self, value: Decimal) -> bool:
        if value < self.minimum or value > self.maximum:
            return False
        if self.step is None:
            return True
        return (value - self.minimum) % self.step == 0

    def describe(self) -> str:
        text = f"{self.minimum}..{self.maximum}"
        if self.step is not None:
            text += f" in steps of {self.step}"
        return text


def _reject(
    kind: RejectionKind,
    code: str,
    message: str,
    field: str | None = None,
    from_status: GradingStatus | None = None,
    to_status: GradingStatus | None = None,
    allowed: tuple[GradingStatus, ...] = (),
) -> TransitionRejection:
    return TransitionRejection(
        kind=kind,
        code=code,
        message=message,
        field=field,
        from_status=from_status,
        to_status=to_status,
        allowed=allowed,
    )


def _sorted_statuses(statuses: frozenset[GradingStatus]) -> tuple[GradingStatus, ...]:
    order = list(GradingStatus)
    return tuple(sorted(statuses, key=order.index))


class TransitionValidator:
    """
    Validates requested transitions against the catalog.

    Contract:
        ``validate()`` returns either a ``ValidatedTransition`` or a
        ``TransitionRejection``; it holds no state between calls.
    """

    def __init__(
        self,
        catalog: StatusCatalog | None = None,
        grade_scale: GradeScale | None = None,
    ) -> None:
        self._catalog = catalog or DEFAULT_CATALOG
        self._grade_scale = grade_scale or GradeScale()

    @property
    def grade_scale(self) -> GradeScale:
        return self._grade_scale

    def validate(
        self,
        snapshot: SubmissionSnapshot,
        target_status: GradingStatus | str | None,
        payload: Mapping[str, Any] | None = None,
        auth_result: AuthenticationResult | str | None = None,
    ) -> ValidatedTransition | TransitionRejection:
        current = snapshot.status
        data = normalize_payload(payload)

        # 1. Terminal guard
        if self._catalog.is_terminal(current):
            return _reject(
                RejectionKind.TERMINAL_STATE,
                "TERMINAL_STATE",
                f"Submission {snapshot.id} is '{current.value}', a terminal status; "
                "no further transitions are allowed",
                from_status=current,
            )

        target: GradingStatus | None = None
        if target_status is not None and target_status != "":
            try:
                target = parse_status(target_status)
            except ValueError:
                return _reject(
                    RejectionKind.INVALID_TRANSITION,
                    "UNKNOWN_STATUS",
                    f"'{target_status}' is not a known grading status",
                    field="status",
                    from_status=current,
                )

        # 2. Authentication step derives its own target
        if current == GradingStatus.AUTHENTICATION_IN_PROGRESS:
            derived = self._derive_authentication_target(current, target, auth_result, data)
            if isinstance(derived, TransitionRejection):
                return derived
            target = derived
        elif auth_result is not None:
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "UNEXPECTED_AUTHENTICATION_RESULT",
                "An authentication result is only accepted while the submission is "
                f"'{GradingStatus.AUTHENTICATION_IN_PROGRESS.value}', "
                f"not '{current.value}'",
                field="authentication_result",
                from_status=current,
            )

        # 3. Target present
        if target is None:
            return _reject(
                RejectionKind.MISSING_PAYLOAD_FIELD,
                "MISSING_PAYLOAD_FIELD",
                "A target status is required",
                field="status",
                from_status=current,
                allowed=_sorted_statuses(
                    self._catalog.allowed_next(current, snapshot.return_method)
                ),
            )

        # 4. Duplicate request
        if target == current:
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "DUPLICATE_TRANSITION",
                f"Submission {snapshot.id} is already '{current.value}'",
                from_status=current,
                to_status=target,
            )

        # 5. Reachability under the effective return method
        effective_method = self._resolve_return_method(snapshot, target, data)
        if isinstance(effective_method, TransitionRejection):
            return effective_method
        if effective_method is not None:
            data["return_method"] = effective_method.value

        allowed = self._catalog.allowed_next(current, effective_method)
        if target not in allowed:
            return self._unreachable(snapshot, target, effective_method, allowed)

        # 6. Payload contract
        contract = self._catalog.contract_for(current, target)
        payload_type = contract.payload_type
        relevant = {k: v for k, v in data.items() if k in payload_type.field_names}
        try:
            parsed = payload_type.from_mapping(relevant)
        except PayloadFieldError as exc:
            return self._field_rejection(exc, current, target)

        if contract.writable_fields == GRADE_FIELDS:
            rejection = self._check_grades(parsed, current, target)
            if rejection is not None:
                return rejection

        fields_to_merge = self._fields_to_merge(
            snapshot, parsed, contract.writable_fields
        )
        cleared = contract.cleared_fields
        if (
            target == GradingStatus.READY_FOR_RETURN
            and effective_method == ReturnMethod.PICKUP
        ):
            cleared = DELIVERY_FIELDS

        # 7. Accepted
        return ValidatedTransition(
            from_status=current,
            to_status=target,
            payload=parsed,
            fields_to_merge=fields_to_merge,
            cleared_fields=cleared,
        )

    # ------------------------------------------------------------------
    # Rule helpers
    # ------------------------------------------------------------------

    def _derive_authentication_target(
        self,
        current: GradingStatus,
        target: GradingStatus | None,
        auth_result: AuthenticationResult | str | None,
        data: dict[str, Any],
    ) -> GradingStatus | TransitionRejection:
        raw = auth_result if auth_result is not None else data.get("authentication_result")
        if raw is None:
            return _reject(
                RejectionKind.MISSING_PAYLOAD_FIELD,
                "MISSING_PAYLOAD_FIELD",
                "An authentication result ('Authentic' or 'Fake') is required "
                f"to leave '{current.value}'",
                field="authentication_result",
                from_status=current,
                to_status=target,
            )
        try:
            result = AuthenticationResult(raw)
        except ValueError:
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "INVALID_AUTHENTICATION_RESULT",
                f"Authentication result must be 'Authentic' or 'Fake', got '{raw}'",
                field="authentication_result",
                from_status=current,
                to_status=target,
            )
        derived = AUTHENTICATION_OUTCOMES[result]
        if target is not None and target != derived:
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "AUTHENTICATION_TARGET_MISMATCH",
                f"Authentication result '{result.value}' leads to '{derived.value}', "
                f"not '{target.value}'",
                field="status",
                from_status=current,
                to_status=target,
                allowed=(derived,),
            )
        data["authentication_result"] = result.value
        return derived

    def _resolve_return_method(
        self,
        snapshot: SubmissionSnapshot,
        target: GradingStatus,
        data: dict[str, Any],
    ) -> ReturnMethod | None | TransitionRejection:
        stored = snapshot.return_method
        raw = data.get("return_method")
        supplied: ReturnMethod | None = None
        if raw is not None:
            try:
                supplied = ReturnMethod(raw)
            except ValueError:
                return _reject(
                    RejectionKind.INVALID_TRANSITION,
                    "INVALID_RETURN_METHOD",
                    f"Return method must be 'pickup' or 'delivery', got '{raw}'",
                    field="return_method",
                    from_status=snapshot.status,
                    to_status=target,
                )
        if stored is not None and supplied is not None and stored != supplied:
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "RETURN_METHOD_CONFLICT",
                f"Return method is already '{stored.value}' and cannot change "
                f"to '{supplied.value}'",
                field="return_method",
                from_status=snapshot.status,
                to_status=target,
            )
        return stored or supplied

    def _unreachable(
        self,
        snapshot: SubmissionSnapshot,
        target: GradingStatus,
        method: ReturnMethod | None,
        allowed: frozenset[GradingStatus],
    ) -> TransitionRejection:
        current = snapshot.status
        allowed_sorted = _sorted_statuses(allowed)
        if method is not None and target in self._catalog.allowed_next(current):
            return _reject(
                RejectionKind.INVALID_TRANSITION,
                "RETURN_METHOD_MISMATCH",
                f"'{target.value}' does not match return method '{method.value}'; "
                "expected "
                + ", ".join(f"'{s.value}'" for s in allowed_sorted),
                field="return_method",
                from_status=current,
                to_status=target,
                allowed=allowed_sorted,
            )
        expected = ", ".join(f"'{s.value}'" for s in allowed_sorted) or "none"
        return _reject(
            RejectionKind.INVALID_TRANSITION,
            "INVALID_TRANSITION",
            f"Cannot move from '{current.value}' to '{target.value}'; "
            f"allowed next: {expected}",
            field="status",
            from_status=current,
            to_status=target,
            allowed=allowed_sorted,
        )

    def _field_rejection(
        self,
        exc: PayloadFieldError,
        current: GradingStatus,
        target: GradingStatus,
    ) -> TransitionRejection:
        if exc.missing:
            return _reject(
                RejectionKind.MISSING_PAYLOAD_FIELD,
                "MISSING_PAYLOAD_FIELD",
                f"'{exc.field}' is required to move from '{current.value}' "
                f"to '{target.value}'",
                field=exc.field,
                from_status=current,
                to_status=target,
            )
        code = "GRADE_OUT_OF_RANGE" if exc.field in GRADE_FIELDS else "INVALID_PAYLOAD_FIELD"
        return _reject(
            RejectionKind.INVALID_TRANSITION,
            code,
            f"'{exc.field}' {exc.reason}",
            field=exc.field,
            from_status=current,
            to_status=target,
        )

    def _check_grades(
        self,
        parsed: TransitionPayload,
        current: GradingStatus,
        target: GradingStatus,
    ) -> TransitionRejection | None:
        for name in GRADE_FIELDS:
            value = getattr(parsed, name)
            if not self._grade_scale.contains(value):
                return _reject(
                    RejectionKind.INVALID_TRANSITION,
                    "GRADE_OUT_OF_RANGE",
                    f"'{name}' is {value}; grades must be within "
                    f"{self._grade_scale.describe()}",
                    field=name,
                    from_status=current,
                    to_status=target,
                )
        return None

    @staticmethod
    def _fields_to_merge(
        snapshot: SubmissionSnapshot,
        parsed: TransitionPayload,
        writable: tuple[str, ...],
    ) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for name, value in parsed.as_fields().items():
            if name not in writable:
                continue
            if name == "return_method":
                if snapshot.return_method is not None:
                    continue
                value = ReturnMethod(value)
            elif name == "authentication_result":
                value = AuthenticationResult(value)
            merged[name] = value
        return merged
