"""
Commission engine.

Applies the commission cascade for a confirmed entry payment: walks the
payer's referral chain and credits each ancestor according to the rate
table. Idempotent per ``(source_payment_id, payee_user_id, level)``.
"""

from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.settings import settings
from contempla.models.commission import Commission
from contempla.models.enums import CreditTransactionKind
from contempla.repositories.commission_repository import CommissionRepository
from contempla.repositories.outbox_repository import OutboxRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.services.base_service import BaseService
from contempla.services.commission.config import (
    COMMISSION_RATES,
    commission_amount,
    effective_max_depth,
    validate_rate_table,
)
from contempla.services.events import CommissionCredited, record_event
from contempla.services.ledger.store import LedgerStore
from contempla.utils.exceptions import InvariantViolation, ParticipantNotFound


class CommissionEngine(BaseService):
    """Commission cascade. Runs inside the caller's transaction."""

    def __init__(
        self,
        session: AsyncSession,
        rates: dict[int, Decimal] | None = None,
        max_depth: int | None = None,
    ) -> None:
        super().__init__(session)
        if rates is not None:
            validate_rate_table(rates)
        self.rates = rates if rates is not None else COMMISSION_RATES
        self.max_depth = effective_max_depth(
            max_depth if max_depth is not None else settings.commission_max_depth,
            self.rates,
        )
        self.commission_repo = CommissionRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.outbox_repo = OutboxRepository(session)
        self.ledger = LedgerStore(session)

    async def apply_cascade(
        self,
        source_payment_id: str,
        payer_participant_id: int,
        entry_amount: Decimal,
    ) -> list[Commission]:
        """
        Credit the payer's referral chain.

        Safe to call repeatedly for the same payment: levels already paid
        are skipped, and a concurrent duplicate loses on the unique
        constraint inside its savepoint.

        Args:
            source_payment_id: External payment reference
            payer_participant_id: Participant whose entry fee was paid
            entry_amount: Entry fee the rates apply to

        Returns:
            Commission rows created by this call (empty on full replay)

        Raises:
            ParticipantNotFound: Unknown payer
            InvariantViolation: Referral chain loops or points nowhere
        """
        payer = await self.participant_repo.get_by_id(payer_participant_id)
        if payer is None:
            raise ParticipantNotFound(
                f"Participant {payer_participant_id} not found"
            )

        created: list[Commission] = []
        visited = {payer.id}
        ancestor_id = payer.referred_by
        level = 1

        while ancestor_id is not None and level <= self.max_depth:
            if ancestor_id in visited:
                self.logger.critical(
                    f"Referral cycle at participant {ancestor_id} "
                    f"(payer {payer.id})"
                )
                raise InvariantViolation(
                    f"Referral chain of participant {payer.id} loops"
                )
            visited.add(ancestor_id)

            payee = await self.participant_repo.get_by_id(ancestor_id)
            if payee is None:
                raise InvariantViolation(
                    f"Referrer {ancestor_id} of the chain does not exist"
                )

            commission = await self._credit_level(
                source_payment_id, payer.id, payee.id, payee.user_id,
                level, entry_amount,
            )
            if commission is not None:
                created.append(commission)

            ancestor_id = payee.referred_by
            level += 1

        if created:
            self.logger.info(
                f"Cascade for {source_payment_id}: "
                f"{len(created)} commission(s) credited",
                extra={
                    "source_payment_id": source_payment_id,
                    "payer_participant_id": payer.id,
                },
            )
        return created

    async def _credit_level(
        self,
        source_payment_id: str,
        payer_participant_id: int,
        payee_participant_id: int,
        payee_user_id: int,
        level: int,
        entry_amount: Decimal,
    ) -> Commission | None:
        amount = commission_amount(entry_amount, level, self.rates)
        if amount <= 0:
            return None

        if await self.commission_repo.key_exists(
            source_payment_id, payee_user_id, level
        ):
            self.logger.debug(
                f"Commission {source_payment_id}/{payee_user_id}/L{level} "
                f"already recorded"
            )
            return None

        try:
            async with self.session.begin_nested():
                commission = Commission(
                    source_payment_id=source_payment_id,
                    payer_participant_id=payer_participant_id,
                    payee_participant_id=payee_participant_id,
                    payee_user_id=payee_user_id,
                    level=level,
                    rate=self.rates[level],
                    amount=amount,
                )
                self.session.add(commission)
                await self.session.flush()

                await self.ledger.apply_transaction(
                    user_id=payee_user_id,
                    amount=amount,
                    kind=CreditTransactionKind.COMMISSION_CREDIT,
                    reference_id=source_payment_id,
                    description=f"Level {level} commission",
                )
                await record_event(
                    self.outbox_repo,
                    CommissionCredited(
                        payee_user_id=payee_user_id,
                        amount=amount,
                        level=level,
                        source_payment_id=source_payment_id,
                    ),
                )
        except IntegrityError:
            self.logger.info(
                f"Commission {source_payment_id}/{payee_user_id}/L{level} "
                f"recorded concurrently, skipping"
            )
            return None

        return commission
