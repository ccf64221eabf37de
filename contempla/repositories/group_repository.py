"""
Group repository.

Data access layer for Group model, including the optimistic version
guard used by admissions and state changes.
"""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contempla.models.group import Group
from contempla.repositories.base import BaseRepository


class GroupRepository(BaseRepository[Group]):
    """Group repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize group repository."""
        super().__init__(Group, session)

    async def get_by_referral_code(self, code: str) -> Group | None:
        """
        Get group by referral code.

        Args:
            code: Normalised referral code

        Returns:
            Group or None
        """
        return await self.get_by(referral_code=code)

    async def referral_code_exists(self, code: str) -> bool:
        """Check whether a referral code is already taken."""
        return await self.exists(referral_code=code)

    async def compare_and_set(
        self, group_id: int, expected_version: int, **values: Any
    ) -> bool:
        """
        Update the group only if nobody changed it since ``expected_version``.

        Bumps ``version`` by one together with ``values``. The in-session
        Group instance is synchronised in place.

        Args:
            group_id: Group ID
            expected_version: Version read by the caller
            **values: Extra columns to set

        Returns:
            True if the row was updated, False on a lost race
        """
        stmt = (
            update(Group)
            .where(Group.id == group_id, Group.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session="evaluate")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_many(self, group_ids: list[int]) -> list[Group]:
        """Get groups by IDs."""
        if not group_ids:
            return []
        stmt = select(Group).where(Group.id.in_(group_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
