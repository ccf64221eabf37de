"""Contemplation rules."""

from collections.abc import Iterable

from contempla.models.enums import PaymentStatus
from contempla.models.participant import Participant


def select_contemplation_candidate(
    participants: Iterable[Participant],
) -> Participant | None:
    """
    Lowest position among Paid participants.

    Position is assignment order, not payment order, so the group creator
    wins whenever they paid.
    """
    paid = [
        p for p in participants
        if p.payment_status == PaymentStatus.PAID
    ]
    if not paid:
        return None
    return min(paid, key=lambda p: p.position)


def is_ready_for_contemplation(
    capacity: int, active: list[Participant]
) -> bool:
    """All ``capacity`` seats are held and every holder has paid."""
    return len(active) == capacity and all(
        p.payment_status == PaymentStatus.PAID for p in active
    )
