"""
Group join service.

Front door for join requests ``{plan_id, referral_code?, user_id}``.
Resolves the code, creates or joins a group, and turns expected
conditions into a typed JoinResult instead of raising them.
"""

from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy.ext.asyncio import AsyncSession

from contempla.config.business_constants import MSG_INVALID_REFERRAL_CODE
from contempla.models.group import Group
from contempla.models.participant import Participant
from contempla.repositories.participant_repository import ParticipantRepository
from contempla.repositories.plan_repository import PlanRepository
from contempla.services.base_service import BaseService
from contempla.services.group.coordinator import GroupCoordinator
from contempla.services.referral.resolver import ExistingGroup, ReferralResolver
from contempla.utils.exceptions import (
    AlreadyMember,
    ExpectedCondition,
    GroupFull,
    GroupNotAcceptingMembers,
    InvalidReferralCode,
    InvariantViolation,
    PlanNotFound,
)
from contempla.utils.retry import retry_transient


class JoinStatus(StrEnum):
    CREATED = "created"
    JOINED = "joined"
    GROUP_FULL = "group_full"
    GROUP_NOT_ACCEPTING = "group_not_accepting_members"
    INVALID_REFERRAL_CODE = "invalid_referral_code"
    ALREADY_MEMBER = "already_member"
    PLAN_NOT_FOUND = "plan_not_found"
    REJECTED = "rejected"


_STATUS_BY_CONDITION: dict[type[ExpectedCondition], JoinStatus] = {
    GroupFull: JoinStatus.GROUP_FULL,
    GroupNotAcceptingMembers: JoinStatus.GROUP_NOT_ACCEPTING,
    InvalidReferralCode: JoinStatus.INVALID_REFERRAL_CODE,
    AlreadyMember: JoinStatus.ALREADY_MEMBER,
    PlanNotFound: JoinStatus.PLAN_NOT_FOUND,
}

# Statuses where the user should be offered a fresh group
_OFFER_CREATE = frozenset({JoinStatus.GROUP_FULL, JoinStatus.GROUP_NOT_ACCEPTING})


@dataclass(frozen=True)
class JoinRequest:
    plan_id: int
    user_id: int
    referral_code: str | None = None


@dataclass(frozen=True)
class JoinResult:
    status: JoinStatus
    group_id: int | None = None
    participant_id: int | None = None
    referral_code: str | None = None
    position: int | None = None
    message: str | None = None
    offer_create_group: bool = False

    @property
    def ok(self) -> bool:
        return self.status in (JoinStatus.CREATED, JoinStatus.JOINED)


class GroupJoinService(BaseService):
    """Creates or joins groups on behalf of a user."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.plan_repo = PlanRepository(session)
        self.participant_repo = ParticipantRepository(session)
        self.resolver = ReferralResolver(session)
        self.coordinator = GroupCoordinator(session)

    async def join(self, request: JoinRequest) -> JoinResult:
        """
        Handle a join request.

        Returns:
            JoinResult for both successes and expected conditions

        Raises:
            TransientStoreError: Store stayed unavailable through retries
        """
        try:
            return await retry_transient(
                lambda: self._join_once(request),
                operation_name=f"join(plan={request.plan_id})",
            )
        except ExpectedCondition as e:
            await self.rollback()
            status = _STATUS_BY_CONDITION.get(type(e), JoinStatus.REJECTED)
            self.logger.info(
                f"Join by user {request.user_id} -> {status.value}",
                extra={"plan_id": request.plan_id, "code": e.code},
            )
            return JoinResult(
                status=status,
                message=e.message,
                offer_create_group=status in _OFFER_CREATE,
            )

    async def _join_once(self, request: JoinRequest) -> JoinResult:
        plan = await self.plan_repo.get_by_id(request.plan_id)
        if plan is None:
            raise PlanNotFound(f"Plan {request.plan_id} not found")

        resolution = await self.resolver.resolve(request.referral_code)

        if not isinstance(resolution, ExistingGroup):
            group, participant = await self.coordinator.create_group(
                plan.id, request.user_id
            )
            return self._result(JoinStatus.CREATED, group, participant)

        group = resolution.group
        if group.plan_id != plan.id:
            raise InvalidReferralCode(MSG_INVALID_REFERRAL_CODE)

        referrer = await self.participant_repo.get_creator(group.id)
        if referrer is None:
            raise InvariantViolation(f"Group {group.id} has no creator seat")

        participant = await self.coordinator.join_group(
            group.id, request.user_id, referrer.id
        )
        return self._result(JoinStatus.JOINED, group, participant)

    @staticmethod
    def _result(
        status: JoinStatus, group: Group, participant: Participant
    ) -> JoinResult:
        return JoinResult(
            status=status,
            group_id=group.id,
            participant_id=participant.id,
            referral_code=group.referral_code,
            position=participant.position,
        )
