"""
Withdrawal repository.

Data access layer for WithdrawalRequest model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.enums import WithdrawalStatus
from contempla.models.withdrawal_request import WithdrawalRequest
from contempla.repositories.base import BaseRepository


class WithdrawalRepository(BaseRepository[WithdrawalRequest]):
    """Withdrawal repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal repository."""
        super().__init__(WithdrawalRequest, session)

    async def has_pending(self, user_id: int) -> bool:
        """Check whether the user has an unresolved request."""
        return await self.exists(
            user_id=user_id, status=WithdrawalStatus.PENDING.value
        )
