"""
Closed enumerations for model state.

Every state field is a StrEnum stored as its string value. Transition
tables live next to the enums so every state change is checked against one
place.
"""

from enum import StrEnum


class GroupState(StrEnum):
    """Group lifecycle state. Transitions are monotonic."""

    FORMING = "forming"  # Accepting members
    FULL = "full"  # Capacity reached, waiting for payments
    CONTEMPLATING = "contemplating"  # Selecting the contemplated participant
    COMPLETED = "completed"  # Contemplation done


GROUP_TRANSITIONS: dict[GroupState, frozenset[GroupState]] = {
    GroupState.FORMING: frozenset({GroupState.FULL}),
    GroupState.FULL: frozenset({GroupState.CONTEMPLATING}),
    GroupState.CONTEMPLATING: frozenset({GroupState.COMPLETED}),
    GroupState.COMPLETED: frozenset(),
}

# States in which a vacancy may be filled by a new join
ADMITTING_GROUP_STATES = frozenset({GroupState.FORMING, GroupState.FULL})


def can_transition_group(current: GroupState, target: GroupState) -> bool:
    """Check whether ``current -> target`` is an allowed group transition."""
    return target in GROUP_TRANSITIONS[current]


class PaymentStatus(StrEnum):
    """Participant payment status."""

    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING_PAYMENT: frozenset(
        {PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.EXPIRED}
    ),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
}


def can_transition_payment(
    current: PaymentStatus, target: PaymentStatus
) -> bool:
    """Check whether ``current -> target`` is an allowed payment transition."""
    return target in PAYMENT_TRANSITIONS[current]


class CreditTransactionKind(StrEnum):
    """Ledger entry kind."""

    ENTRY_CHARGE = "entry_charge"
    COMMISSION_CREDIT = "commission_credit"
    WITHDRAWAL = "withdrawal"
    MARKETPLACE_DEBIT = "marketplace_debit"
    REFUND = "refund"


CREDIT_KINDS = frozenset(
    {CreditTransactionKind.COMMISSION_CREDIT, CreditTransactionKind.REFUND}
)
DEBIT_KINDS = frozenset(
    {
        CreditTransactionKind.ENTRY_CHARGE,
        CreditTransactionKind.WITHDRAWAL,
        CreditTransactionKind.MARKETPLACE_DEBIT,
    }
)


class PaymentRefStatus(StrEnum):
    """Processing status of a deduplicated payment reference."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class WithdrawalStatus(StrEnum):
    """Withdrawal request status."""

    PENDING = "pending"
    PAID = "paid"
    REJECTED = "rejected"


class OutboxEventType(StrEnum):
    """Outbound fact types."""

    CONTEMPLATION = "contemplation"
    COMMISSION_CREDITED = "commission_credited"
