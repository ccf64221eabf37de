"""
Referral resolver.

Turns an optional referral code into a join target: an existing group to
join, or an instruction to create a new one. Pure lookup, no writes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import (
    MSG_GROUP_FULL,
    MSG_GROUP_NOT_ACCEPTING,
    MSG_INVALID_REFERRAL_CODE,
)
from contempla.config.settings import settings
from contempla.models.enums import ADMITTING_GROUP_STATES, GroupState
from contempla.models.group import Group
from contempla.repositories.group_repository import GroupRepository
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.services.referral.code_generator import normalize_referral_code
from contempla.utils.datetime_utils import utc_now
from contempla.utils.exceptions import (
    GroupFull,
    GroupNotAcceptingMembers,
    InvalidReferralCode,
)


@dataclass(frozen=True)
class CreateNew:
    """No code given: the caller should create a new group."""


@dataclass(frozen=True)
class ExistingGroup:
    """Code resolved to a group that currently admits members."""

    group: Group


class ReferralResolver:
    """Resolves referral codes to groups."""

    def __init__(self, session: AsyncSession) -> None:
        self.group_repo = GroupRepository(session)
        self.participant_repo = ParticipantRepository(session)

    async def resolve(
        self, code: str | None, now: datetime | None = None
    ) -> CreateNew | ExistingGroup:
        """
        Resolve a referral code.

        A Full group whose pending seat expired is still admitting: the
        vacancy is offered at the next position.

        Args:
            code: Referral code or None
            now: Clock override

        Returns:
            CreateNew or ExistingGroup

        Raises:
            InvalidReferralCode: Unknown code
            GroupNotAcceptingMembers: Group is contemplating or completed
            GroupFull: Group has no vacancy
        """
        code = normalize_referral_code(code)
        if code is None:
            return CreateNew()

        group = await self.group_repo.get_by_referral_code(code)
        if group is None:
            raise InvalidReferralCode(MSG_INVALID_REFERRAL_CODE)

        state = GroupState(group.state)
        if state not in ADMITTING_GROUP_STATES:
            raise GroupNotAcceptingMembers(MSG_GROUP_NOT_ACCEPTING)

        if state == GroupState.FULL:
            window_start = (now or utc_now()) - timedelta(
                minutes=settings.reservation_expiry_minutes
            )
            active = await self.participant_repo.count_active(
                group.id, window_start
            )
            if active >= group.capacity:
                raise GroupFull(MSG_GROUP_FULL)

        return ExistingGroup(group=group)
