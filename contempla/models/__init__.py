"""
Database models.

Importing this package registers every table on ``Base.metadata``.
"""

from contempla.models.base import Base
from contempla.models.commission import Commission
from contempla.models.credit_transaction import CreditTransaction
from contempla.models.enums import (
    CreditTransactionKind,
    GroupState,
    OutboxEventType,
    PaymentRefStatus,
    PaymentStatus,
    WithdrawalStatus,
)
from contempla.models.group import Group
from contempla.models.outbox_event import OutboxEvent
from contempla.models.participant import Participant
from contempla.models.plan import Plan
from contempla.models.processed_payment_ref import ProcessedPaymentRef
from contempla.models.user_balance import UserBalance
from contempla.models.withdrawal_request import WithdrawalRequest


__all__ = [
    "Base",
    "Commission",
    "CreditTransaction",
    "CreditTransactionKind",
    "Group",
    "GroupState",
    "OutboxEvent",
    "OutboxEventType",
    "Participant",
    "PaymentRefStatus",
    "PaymentStatus",
    "Plan",
    "ProcessedPaymentRef",
    "UserBalance",
    "WithdrawalRequest",
    "WithdrawalStatus",
]
