"""
Shared fixtures for integration tests.

Each test gets its own SQLite database file (see ``engine`` in the root
conftest). Helpers here drive the services through their public API.
"""

import pytest

from contempla.services.join_service import GroupJoinService, JoinRequest
from contempla.services.payment.handler import PaymentConfirmationHandler


@pytest.fixture
def join(session_maker):
    """Submit a join request in its own session."""

    async def _join(plan_id: int, user_id: int, referral_code: str | None = None):
        async with session_maker() as s:
            return await GroupJoinService(s).join(
                JoinRequest(
                    plan_id=plan_id, user_id=user_id, referral_code=referral_code
                )
            )

    return _join


@pytest.fixture
def pay(session_maker):
    """Deliver a payment confirmation in its own session."""

    async def _pay(participant_id: int, external_ref: str | None = None, amount=None):
        ref = external_ref or f"pay-{participant_id}"
        async with session_maker() as s:
            return await PaymentConfirmationHandler(s).handle_confirmation(
                ref, participant_id, amount
            )

    return _pay


@pytest.fixture
def form_group(session_maker, join):
    """
    Create a group and fill it with joiners.

    Returns:
        Callable returning (group_id, referral_code, participant ids in
        position order)
    """

    async def _form(plan_id: int, members: int, first_user_id: int = 1000):
        created = await join(plan_id, first_user_id)
        assert created.ok, created
        participant_ids = [created.participant_id]
        for offset in range(1, members):
            joined = await join(plan_id, first_user_id + offset, created.referral_code)
            assert joined.ok, joined
            participant_ids.append(joined.participant_id)
        return created.group_id, created.referral_code, participant_ids

    return _form


@pytest.fixture
def load(session_maker):
    """Fresh copy of a row from a new session."""

    async def _load(model, id: int):
        async with session_maker() as s:
            return await s.get(model, id)

    return _load
