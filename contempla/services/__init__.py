"""
Services.

Business logic layer.
"""

from contempla.services.base_service import (
    BaseService,
    log_operation,
    transaction,
)
from contempla.services.commission.engine import CommissionEngine
from contempla.services.group.coordinator import (
    GroupCoordinator,
    NoOp,
    ParticipantConfirmed,
    ParticipantUnavailable,
)
from contempla.services.group.query import GroupQueryService
from contempla.services.join_service import (
    GroupJoinService,
    JoinRequest,
    JoinResult,
    JoinStatus,
)
from contempla.services.ledger.marketplace import MarketplaceService
from contempla.services.ledger.store import BalanceCheck, LedgerStore
from contempla.services.ledger.withdrawal import WithdrawalService
from contempla.services.outbox_relay import OutboxRelay
from contempla.services.payment.credit_checkout import CreditCheckout
from contempla.services.payment.handler import (
    ConfirmationResult,
    ConfirmationStatus,
    PaymentConfirmationHandler,
)
from contempla.services.plan_service import PlanService
from contempla.services.referral.resolver import (
    CreateNew,
    ExistingGroup,
    ReferralResolver,
)


__all__ = [
    "BalanceCheck",
    "BaseService",
    "CommissionEngine",
    "ConfirmationResult",
    "ConfirmationStatus",
    "CreateNew",
    "CreditCheckout",
    "ExistingGroup",
    "GroupCoordinator",
    "GroupJoinService",
    "GroupQueryService",
    "JoinRequest",
    "JoinResult",
    "JoinStatus",
    "LedgerStore",
    "MarketplaceService",
    "NoOp",
    "OutboxRelay",
    "ParticipantConfirmed",
    "ParticipantUnavailable",
    "PaymentConfirmationHandler",
    "PlanService",
    "ReferralResolver",
    "log_operation",
    "transaction",
]
