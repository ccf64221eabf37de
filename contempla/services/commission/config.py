"""
Commission rate table.

Level 1 is the payer's direct referrer, level 2 the referrer's referrer.
The table is checked once at import: levels must be contiguous from 1,
every rate positive, and the total at most the entry amount.
"""

from decimal import ROUND_DOWN, Decimal

from contempla.config.business_constants import MONEY_QUANTUM


COMMISSION_RATES: dict[int, Decimal] = {
    1: Decimal("0.10"),  # Direct referrer
    2: Decimal("0.05"),  # Influencer above the referrer
}


def validate_rate_table(rates: dict[int, Decimal]) -> None:
    """
    Check the static invariants of a rate table.

    Raises:
        ValueError: If the table is malformed
    """
    if not rates:
        raise ValueError("Commission rate table is empty")

    if sorted(rates) != list(range(1, len(rates) + 1)):
        raise ValueError(
            f"Commission levels must be contiguous from 1, got {sorted(rates)}"
        )

    for level, rate in rates.items():
        if rate <= 0:
            raise ValueError(f"Commission rate for level {level} must be positive")

    total = sum(rates.values(), Decimal("0"))
    if total > 1:
        raise ValueError(
            f"Commission rates sum to {total}, more than the entry amount"
        )


def effective_max_depth(
    configured_depth: int, rates: dict[int, Decimal] = COMMISSION_RATES
) -> int:
    """Configured cascade depth capped to the levels the table defines."""
    return max(0, min(configured_depth, len(rates)))


def commission_amount(
    entry_amount: Decimal,
    level: int,
    rates: dict[int, Decimal] = COMMISSION_RATES,
) -> Decimal:
    """
    Commission for ``level``, rounded down to cents.

    Rounding down keeps the level total at or below the entry amount.
    """
    rate = rates[level]
    return (entry_amount * rate).quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)


validate_rate_table(COMMISSION_RATES)
