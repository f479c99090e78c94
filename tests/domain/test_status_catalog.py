"""
Status catalog tests.

Verifies:
- The trunk and both return branches are wired as documented
- Terminal statuses have no outgoing edges
- allowed_next respects the return-method key at the branch point
- Payload contracts name the right required fields
- Display names and legacy aliases parse to catalog values
"""

import pytest

from grading_kernel.domain.catalog import (
    DEFAULT_CATALOG,
    DELIVERY_FIELDS,
    GRADE_FIELDS,
    TERMINAL_STATUSES,
    GradingStatus,
    ReturnMethod,
    parse_status,
)
from grading_kernel.domain.payloads import (
    DeliveryPayload,
    EmptyPayload,
    GradePayload,
    InspectionPayload,
    PickupPayload,
)

S = GradingStatus


class TestTrunk:
    @pytest.mark.parametrize(
        "current, expected",
        [
            (S.SUBMITTED, {S.AUTHENTICATION_IN_PROGRESS}),
            (S.AUTHENTICATION_IN_PROGRESS, {S.CONDITION_INSPECTION, S.REJECTED_COUNTERFEIT}),
            (S.CONDITION_INSPECTION, {S.GRADING_ASSIGNED}),
            (S.GRADING_ASSIGNED, {S.SLABBING}),
            (S.SLABBING, {S.READY_FOR_RETURN}),
        ],
    )
    def test_single_step_successors(self, current, expected):
        assert DEFAULT_CATALOG.allowed_next(current) == frozenset(expected)

    def test_trunk_order(self):
        assert DEFAULT_CATALOG.trunk[0] == DEFAULT_CATALOG.initial_status == S.SUBMITTED
        assert DEFAULT_CATALOG.trunk[-1] == S.READY_FOR_RETURN

    def test_each_trunk_status_reaches_the_next(self):
        trunk = DEFAULT_CATALOG.trunk
        for current, nxt in zip(trunk, trunk[1:]):
            assert nxt in DEFAULT_CATALOG.allowed_next(current)

    def test_counterfeit_only_reachable_from_authentication(self):
        sources = [
            s for s in GradingStatus
            if S.REJECTED_COUNTERFEIT in DEFAULT_CATALOG.allowed_next(s)
        ]
        assert sources == [S.AUTHENTICATION_IN_PROGRESS]


class TestBranches:
    def test_ready_for_return_is_the_branch_point(self):
        assert DEFAULT_CATALOG.is_branch_point(S.READY_FOR_RETURN)
        assert not DEFAULT_CATALOG.is_branch_point(S.SLABBING)

    def test_delivery_branch(self):
        assert DEFAULT_CATALOG.allowed_next(S.READY_FOR_RETURN, ReturnMethod.DELIVERY) == {S.SHIPPED}
        assert DEFAULT_CATALOG.allowed_next(S.SHIPPED, ReturnMethod.DELIVERY) == {S.DELIVERED}
        assert DEFAULT_CATALOG.allowed_next(S.DELIVERED, ReturnMethod.DELIVERY) == {S.COMPLETED}

    def test_pickup_branch(self):
        assert DEFAULT_CATALOG.allowed_next(S.READY_FOR_RETURN, ReturnMethod.PICKUP) == {
            S.READY_FOR_PICKUP
        }
        assert DEFAULT_CATALOG.allowed_next(S.READY_FOR_PICKUP, ReturnMethod.PICKUP) == {
            S.COMPLETED
        }

    def test_branch_point_without_method_exposes_both_branches(self):
        assert DEFAULT_CATALOG.allowed_next(S.READY_FOR_RETURN) == {
            S.SHIPPED,
            S.READY_FOR_PICKUP,
        }

    def test_branch_status_on_the_other_branch_has_no_successor(self):
        assert DEFAULT_CATALOG.allowed_next(S.SHIPPED, ReturnMethod.PICKUP) == frozenset()
        assert DEFAULT_CATALOG.allowed_next(S.READY_FOR_PICKUP, ReturnMethod.DELIVERY) == frozenset()

    def test_return_method_ignored_on_trunk(self):
        assert DEFAULT_CATALOG.allowed_next(S.GRADING_ASSIGNED, ReturnMethod.PICKUP) == {S.SLABBING}

    def test_branches_share_only_completed(self):
        delivery = set(DEFAULT_CATALOG.branch_for(ReturnMethod.DELIVERY))
        pickup = set(DEFAULT_CATALOG.branch_for(ReturnMethod.PICKUP))
        assert delivery & pickup == {S.COMPLETED}

    @pytest.mark.parametrize(
        "status, method",
        [
            (S.SHIPPED, ReturnMethod.DELIVERY),
            (S.DELIVERED, ReturnMethod.DELIVERY),
            (S.READY_FOR_PICKUP, ReturnMethod.PICKUP),
            (S.SLABBING, None),
            (S.COMPLETED, None),
        ],
    )
    def test_return_method_for(self, status, method):
        assert DEFAULT_CATALOG.return_method_for(status) == method


class TestTerminal:
    def test_terminal_set(self):
        assert TERMINAL_STATUSES == {S.COMPLETED, S.REJECTED_COUNTERFEIT}

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_has_no_successors(self, status):
        assert DEFAULT_CATALOG.is_terminal(status)
        assert DEFAULT_CATALOG.allowed_next(status) == frozenset()
        for method in ReturnMethod:
            assert DEFAULT_CATALOG.allowed_next(status, method) == frozenset()

    def test_non_terminal_statuses_have_a_successor(self):
        for status in GradingStatus:
            if DEFAULT_CATALOG.is_terminal(status):
                continue
            assert DEFAULT_CATALOG.allowed_next(status), status


class TestContracts:
    def test_grading_requires_all_grades(self):
        contract = DEFAULT_CATALOG.contract_for(S.GRADING_ASSIGNED, S.SLABBING)
        assert contract.payload_type is GradePayload
        assert contract.required_fields == GRADE_FIELDS

    def test_slabbing_requires_proof_image(self):
        assert DEFAULT_CATALOG.required_fields(S.SLABBING, S.READY_FOR_RETURN) == (
            "slabbing_proof_image",
        )

    def test_shipping_requires_delivery_details(self):
        contract = DEFAULT_CATALOG.contract_for(S.READY_FOR_RETURN, S.SHIPPED)
        assert contract.payload_type is DeliveryPayload
        assert set(DELIVERY_FIELDS) <= set(contract.required_fields)

    def test_pickup_clears_delivery_fields(self):
        contract = DEFAULT_CATALOG.contract_for(S.READY_FOR_RETURN, S.READY_FOR_PICKUP)
        assert contract.payload_type is PickupPayload
        assert contract.cleared_fields == DELIVERY_FIELDS

    def test_inspection_metadata_is_optional(self):
        contract = DEFAULT_CATALOG.contract_for(S.CONDITION_INSPECTION, S.GRADING_ASSIGNED)
        assert contract.payload_type is InspectionPayload
        assert contract.required_fields == ()
        assert contract.writable_fields == ("inspection_metadata",)

    def test_data_free_edge_has_empty_contract(self):
        contract = DEFAULT_CATALOG.contract_for(S.SUBMITTED, S.AUTHENTICATION_IN_PROGRESS)
        assert contract.payload_type is EmptyPayload
        assert contract.required_fields == ()
        assert contract.writable_fields == ()


class TestParseStatus:
    def test_display_names(self):
        for status in GradingStatus:
            assert parse_status(status.value) is status

    def test_enum_passthrough(self):
        assert parse_status(S.SHIPPED) is S.SHIPPED

    def test_legacy_slabbing_alias(self):
        assert parse_status("Encapsulation/Slabbing") is S.SLABBING

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            parse_status("Lost in Transit")
