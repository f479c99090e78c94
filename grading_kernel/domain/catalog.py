"""
Status catalog (``grading_kernel.domain.catalog``).

Responsibility
--------------
The fixed vocabulary of grading workflow states, the transition table
keyed by ``(current_status, return_method)``, the terminal set, and the
payload contract of every edge.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``.

Shape of the workflow
---------------------
Trunk::

    Submitted -> Authentication in Progress -> Condition Inspection
              -> Grading Assigned -> Slabbing -> Ready for Return

Branch at ``Ready for Return`` keyed by ``return_method``::

    delivery: Shipped -> Delivered -> Completed
    pickup:   Ready for Pickup -> Completed

``Rejected - Counterfeit`` is reachable only from
``Authentication in Progress``.  ``Completed`` and ``Rejected - Counterfeit``
are absorbing.

Invariants enforced
-------------------
* ``TRANSITION_TABLE`` defines the only valid edges.  Terminal states have
  no outgoing edges.
* Every edge leaving ``Ready for Return`` is keyed by a concrete
  ``ReturnMethod``; the branches never share a status other than
  ``Completed``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from grading_kernel.domain.payloads import (
    AuthenticationPayload,
    DeliveryPayload,
    EmptyPayload,
    GradePayload,
    InspectionPayload,
    PickupPayload,
    SlabbingProofPayload,
    TransitionPayload,
)


class GradingStatus(str, Enum):
    """Workflow states of a grading submission."""

    SUBMITTED = "Submitted"
    AUTHENTICATION_IN_PROGRESS = "Authentication in Progress"
    CONDITION_INSPECTION = "Condition Inspection"
    GRADING_ASSIGNED = "Grading Assigned"
    SLABBING = "Slabbing"
    READY_FOR_RETURN = "Ready for Return"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    READY_FOR_PICKUP = "Ready for Pickup"
    COMPLETED = "Completed"
    REJECTED_COUNTERFEIT = "Rejected - Counterfeit"


class ReturnMethod(str, Enum):
    """How a slabbed card goes back to its owner."""

    PICKUP = "pickup"
    DELIVERY = "delivery"


class AuthenticationResult(str, Enum):
    """Outcome of the authentication checkpoint."""

    AUTHENTIC = "Authentic"
    FAKE = "Fake"


# Older records and the original admin UI used this name for Slabbing.
STATUS_ALIASES: dict[str, GradingStatus] = {
    "Encapsulation/Slabbing": GradingStatus.SLABBING,
}

INITIAL_STATUS = GradingStatus.SUBMITTED

TRUNK: tuple[GradingStatus, ...] = (
    GradingStatus.SUBMITTED,
    GradingStatus.AUTHENTICATION_IN_PROGRESS,
    GradingStatus.CONDITION_INSPECTION,
    GradingStatus.GRADING_ASSIGNED,
    GradingStatus.SLABBING,
    GradingStatus.READY_FOR_RETURN,
)

BRANCHES: dict[ReturnMethod, tuple[GradingStatus, ...]] = {
    ReturnMethod.DELIVERY: (
        GradingStatus.SHIPPED,
        GradingStatus.DELIVERED,
        GradingStatus.COMPLETED,
    ),
    ReturnMethod.PICKUP: (
        GradingStatus.READY_FOR_PICKUP,
        GradingStatus.COMPLETED,
    ),
}

TERMINAL_STATUSES: frozenset[GradingStatus] = frozenset({
    GradingStatus.COMPLETED,
    GradingStatus.REJECTED_COUNTERFEIT,
})

AUTHENTICATION_OUTCOMES: dict[AuthenticationResult, GradingStatus] = {
    AuthenticationResult.AUTHENTIC: GradingStatus.CONDITION_INSPECTION,
    AuthenticationResult.FAKE: GradingStatus.REJECTED_COUNTERFEIT,
}

_S = GradingStatus

# (current_status, return_method) -> allowed next statuses.
# return_method is None on edges that do not depend on the branch.
TRANSITION_TABLE: dict[tuple[GradingStatus, ReturnMethod | None], frozenset[GradingStatus]] = {
    (_S.SUBMITTED, None): frozenset({_S.AUTHENTICATION_IN_PROGRESS}),
    (_S.AUTHENTICATION_IN_PROGRESS, None): frozenset({
        _S.CONDITION_INSPECTION,
        _S.REJECTED_COUNTERFEIT,
    }),
    (_S.CONDITION_INSPECTION, None): frozenset({_S.GRADING_ASSIGNED}),
    (_S.GRADING_ASSIGNED, None): frozenset({_S.SLABBING}),
    (_S.SLABBING, None): frozenset({_S.READY_FOR_RETURN}),
    (_S.READY_FOR_RETURN, ReturnMethod.DELIVERY): frozenset({_S.SHIPPED}),
    (_S.READY_FOR_RETURN, ReturnMethod.PICKUP): frozenset({_S.READY_FOR_PICKUP}),
    (_S.SHIPPED, ReturnMethod.DELIVERY): frozenset({_S.DELIVERED}),
    (_S.DELIVERED, ReturnMethod.DELIVERY): frozenset({_S.COMPLETED}),
    (_S.READY_FOR_PICKUP, ReturnMethod.PICKUP): frozenset({_S.COMPLETED}),
    (_S.COMPLETED, None): frozenset(),
    (_S.REJECTED_COUNTERFEIT, None): frozenset(),
}

DELIVERY_FIELDS: tuple[str, ...] = (
    "tracking_provider",
    "tracking_number",
    "delivery_address",
)

GRADE_FIELDS: tuple[str, ...] = (
    "grade",
    "grade_corners",
    "grade_edges",
    "grade_surface",
    "grade_centering",
)


@dataclass(frozen=True)
class TransitionContract:
    """Payload contract of one edge.

    ``required_fields`` must be present in the request payload.
    ``writable_fields`` are the only submission columns the edge may set.
    ``cleared_fields`` are reset to NULL when the edge is taken (used by the
    pickup branch to drop delivery-only data).
    """

    from_status: GradingStatus
    to_status: GradingStatus
    payload_type: type[TransitionPayload]
    required_fields: tuple[str, ...] = ()
    writable_fields: tuple[str, ...] = ()
    cleared_fields: tuple[str, ...] = ()


TRANSITION_CONTRACTS: dict[tuple[GradingStatus, GradingStatus], TransitionContract] = {
    (_S.AUTHENTICATION_IN_PROGRESS, _S.CONDITION_INSPECTION): TransitionContract(
        _S.AUTHENTICATION_IN_PROGRESS,
        _S.CONDITION_INSPECTION,
        AuthenticationPayload,
        required_fields=("authentication_result",),
        writable_fields=("authentication_result",),
    ),
    (_S.AUTHENTICATION_IN_PROGRESS, _S.REJECTED_COUNTERFEIT): TransitionContract(
        _S.AUTHENTICATION_IN_PROGRESS,
        _S.REJECTED_COUNTERFEIT,
        AuthenticationPayload,
        required_fields=("authentication_result",),
        writable_fields=("authentication_result",),
    ),
    (_S.CONDITION_INSPECTION, _S.GRADING_ASSIGNED): TransitionContract(
        _S.CONDITION_INSPECTION,
        _S.GRADING_ASSIGNED,
        InspectionPayload,
        writable_fields=("inspection_metadata",),
    ),
    (_S.GRADING_ASSIGNED, _S.SLABBING): TransitionContract(
        _S.GRADING_ASSIGNED,
        _S.SLABBING,
        GradePayload,
        required_fields=GRADE_FIELDS,
        writable_fields=GRADE_FIELDS,
    ),
    (_S.SLABBING, _S.READY_FOR_RETURN): TransitionContract(
        _S.SLABBING,
        _S.READY_FOR_RETURN,
        SlabbingProofPayload,
        required_fields=("slabbing_proof_image",),
        writable_fields=("slabbing_proof_image", "return_method"),
    ),
    (_S.READY_FOR_RETURN, _S.SHIPPED): TransitionContract(
        _S.READY_FOR_RETURN,
        _S.SHIPPED,
        DeliveryPayload,
        required_fields=("return_method",) + DELIVERY_FIELDS,
        writable_fields=("return_method",) + DELIVERY_FIELDS,
    ),
    (_S.READY_FOR_RETURN, _S.READY_FOR_PICKUP): TransitionContract(
        _S.READY_FOR_RETURN,
        _S.READY_FOR_PICKUP,
        PickupPayload,
        required_fields=("return_method",),
        writable_fields=("return_method",),
        cleared_fields=DELIVERY_FIELDS,
    ),
}


class StatusCatalog:
    """
    Read-only view over the workflow definition.

    Contract:
        Immutable, process-wide.  Answers, for any state: which statuses it
        may move to (respecting the return-method branch), whether it is
        terminal, and which payload fields each outgoing edge requires.
    """

    def __init__(
        self,
        table: dict[tuple[GradingStatus, ReturnMethod | None], frozenset[GradingStatus]] | None = None,
        contracts: dict[tuple[GradingStatus, GradingStatus], TransitionContract] | None = None,
    ) -> None:
        self._table = dict(table if table is not None else TRANSITION_TABLE)
        self._contracts = dict(contracts if contracts is not None else TRANSITION_CONTRACTS)

    @property
    def statuses(self) -> tuple[GradingStatus, ...]:
        return tuple(GradingStatus)

    @property
    def initial_status(self) -> GradingStatus:
        return INITIAL_STATUS

    @property
    def trunk(self) -> tuple[GradingStatus, ...]:
        return TRUNK

    def branch_for(self, return_method: ReturnMethod) -> tuple[GradingStatus, ...]:
        """Statuses visited after ``Ready for Return`` on the given branch."""
        return BRANCHES[return_method]

    def is_terminal(self, status: GradingStatus) -> bool:
        return status in TERMINAL_STATUSES

    def is_branch_point(self, status: GradingStatus) -> bool:
        """True when the outgoing edges of ``status`` depend on the return method."""
        return (status, None) not in self._table and any(
            key[0] == status for key in self._table
        )

    def allowed_next(
        self,
        status: GradingStatus,
        return_method: ReturnMethod | None = None,
    ) -> frozenset[GradingStatus]:
        """
        Statuses reachable in one step from ``status``.

        With a return method, only that branch is considered.  Without one,
        a branching status exposes the union of its branches.
        """
        if return_method is not None:
            keyed = self._table.get((status, return_method))
            if keyed is not None:
                return keyed
        unkeyed = self._table.get((status, None))
        if unkeyed is not None:
            return unkeyed
        if return_method is not None:
            # Branch-keyed status reached on the other branch
            return frozenset()
        result: frozenset[GradingStatus] = frozenset()
        for (from_status, _method), targets in self._table.items():
            if from_status == status:
                result = result | targets
        return result

    def contract_for(
        self,
        from_status: GradingStatus,
        to_status: GradingStatus,
    ) -> TransitionContract:
        """Payload contract of an edge; edges without data carry an empty contract."""
        contract = self._contracts.get((from_status, to_status))
        if contract is not None:
            return contract
        return TransitionContract(from_status, to_status, EmptyPayload)

    def required_fields(
        self,
        from_status: GradingStatus,
        to_status: GradingStatus,
    ) -> tuple[str, ...]:
        return self.contract_for(from_status, to_status).required_fields

    def return_method_for(self, status: GradingStatus) -> ReturnMethod | None:
        """The branch a post-branch status belongs to, or None for trunk/terminal."""
        for method, statuses in BRANCHES.items():
            if status in statuses and status not in TERMINAL_STATUSES:
                return method
        return None


def parse_status(value: str | GradingStatus) -> GradingStatus:
    """Parse a display name (or legacy alias) into a ``GradingStatus``.

    Raises:
        ValueError: if ``value`` is not a catalog status.
    """
    if isinstance(value, GradingStatus):
        return value
    if value in STATUS_ALIASES:
        return STATUS_ALIASES[value]
    return GradingStatus(value)


DEFAULT_CATALOG = StatusCatalog()
