"""
Unit tests for group and payment state transitions.
"""

import pytest

from contempla.models.enums import (
    ADMITTING_GROUP_STATES,
    CREDIT_KINDS,
    DEBIT_KINDS,
    CreditTransactionKind,
    GroupState,
    PaymentStatus,
    can_transition_group,
    can_transition_payment,
)


class TestGroupTransitions:
    """Group lifecycle moves forward one step at a time."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (GroupState.FORMING, GroupState.FULL),
            (GroupState.FULL, GroupState.CONTEMPLATING),
            (GroupState.CONTEMPLATING, GroupState.COMPLETED),
        ],
    )
    def test_forward_transitions_allowed(self, current, target):
        assert can_transition_group(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            (GroupState.FULL, GroupState.FORMING),
            (GroupState.COMPLETED, GroupState.FORMING),
            (GroupState.COMPLETED, GroupState.FULL),
            (GroupState.FORMING, GroupState.COMPLETED),
            (GroupState.FORMING, GroupState.CONTEMPLATING),
        ],
    )
    def test_backward_and_skipping_transitions_rejected(self, current, target):
        assert can_transition_group(current, target) is False

    def test_completed_is_terminal(self):
        for target in GroupState:
            assert can_transition_group(GroupState.COMPLETED, target) is False

    def test_admitting_states(self):
        """Forming and Full groups can fill vacancies."""
        assert ADMITTING_GROUP_STATES == {GroupState.FORMING, GroupState.FULL}


class TestPaymentTransitions:
    """Payment status leaves PendingPayment once."""

    @pytest.mark.parametrize(
        "target",
        [PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.EXPIRED],
    )
    def test_pending_can_resolve(self, target):
        assert can_transition_payment(PaymentStatus.PENDING_PAYMENT, target)

    @pytest.mark.parametrize(
        "current",
        [PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.EXPIRED],
    )
    def test_resolved_statuses_are_terminal(self, current):
        for target in PaymentStatus:
            assert can_transition_payment(current, target) is False


class TestCreditKinds:
    """Every ledger kind is either a credit or a debit."""

    def test_kinds_partitioned(self):
        assert CREDIT_KINDS | DEBIT_KINDS == set(CreditTransactionKind)
        assert not CREDIT_KINDS & DEBIT_KINDS
