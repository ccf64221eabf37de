"""
Referral code generation.

Codes are random uppercase alphanumerics. Uniqueness is checked against
the store before use, and the unique index on ``groups.referral_code``
settles any race between two creators.
"""

import secrets

from loguru import logger

from contempla.config.business_constants import REFERRAL_CODE_ALPHABET
from contempla.config.settings import settings
from contempla.repositories.group_repository import GroupRepository
from contempla.utils.exceptions import TransientStoreError


def generate_referral_code(length: int | None = None) -> str:
    """Random referral code of ``length`` characters."""
    length = length or settings.referral_code_length
    return "".join(
        secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length)
    )


def normalize_referral_code(code: str | None) -> str | None:
    """Strip and uppercase a user-supplied code; blank becomes None."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


async def generate_unique_referral_code(
    group_repo: GroupRepository,
    max_attempts: int | None = None,
) -> str:
    """
    Generate a code not yet used by any group.

    Raises:
        TransientStoreError: If every candidate collided
    """
    max_attempts = max_attempts or settings.referral_code_max_attempts

    for attempt in range(max_attempts):
        code = generate_referral_code()
        if not await group_repo.referral_code_exists(code):
            return code
        logger.debug(f"Referral code collision on attempt {attempt + 1}")

    raise TransientStoreError(
        f"No free referral code after {max_attempts} attempts"
    )
