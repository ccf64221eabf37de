"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- Transient Participant objects (never flushed)
"""

from datetime import UTC, datetime

import pytest

from contempla.models.enums import PaymentStatus
from contempla.models.participant import Participant


@pytest.fixture
def make_participant():
    """
    Build Participant objects without a database.

    Returns:
        Callable taking id, position and payment status
    """

    def _make(
        id: int,
        position: int,
        status: PaymentStatus = PaymentStatus.PAID,
        referred_by: int | None = None,
    ) -> Participant:
        return Participant(
            id=id,
            group_id=1,
            user_id=1000 + id,
            position=position,
            payment_status=status.value,
            referred_by=referred_by,
            enrolled_at=datetime.now(UTC),
        )

    return _make
