"""
Unit tests for referral code generation and normalisation.
"""

from unittest.mock import AsyncMock

import pytest

from contempla.config.business_constants import REFERRAL_CODE_ALPHABET
from contempla.config.settings import settings
from contempla.services.referral.code_generator import (
    generate_referral_code,
    generate_unique_referral_code,
    normalize_referral_code,
)
from contempla.utils.exceptions import TransientStoreError


class TestGenerateReferralCode:
    """Test random code generation."""

    def test_default_length(self):
        assert len(generate_referral_code()) == settings.referral_code_length

    def test_custom_length(self):
        assert len(generate_referral_code(12)) == 12

    def test_alphabet(self):
        """Codes use uppercase letters and digits only."""
        code = generate_referral_code(64)
        assert set(code) <= set(REFERRAL_CODE_ALPHABET)

    def test_codes_differ(self):
        """Consecutive codes are not the same."""
        codes = {generate_referral_code() for _ in range(50)}
        assert len(codes) == 50


class TestNormalizeReferralCode:
    """Test user input normalisation."""

    def test_none(self):
        assert normalize_referral_code(None) is None

    def test_blank(self):
        """Blank input means no code."""
        assert normalize_referral_code("   ") is None

    def test_strip_and_upper(self):
        assert normalize_referral_code("  ab12cd34 ") == "AB12CD34"


class TestGenerateUniqueReferralCode:
    """Test collision handling against the store."""

    @pytest.mark.asyncio
    async def test_first_free_code_returned(self):
        group_repo = AsyncMock()
        group_repo.referral_code_exists = AsyncMock(return_value=False)

        code = await generate_unique_referral_code(group_repo)

        assert len(code) == settings.referral_code_length
        group_repo.referral_code_exists.assert_awaited_once_with(code)

    @pytest.mark.asyncio
    async def test_collision_retried(self):
        """A taken code is skipped."""
        group_repo = AsyncMock()
        group_repo.referral_code_exists = AsyncMock(side_effect=[True, True, False])

        await generate_unique_referral_code(group_repo)

        assert group_repo.referral_code_exists.await_count == 3

    @pytest.mark.asyncio
    async def test_exhausted(self):
        """Every candidate taken ends in a transient error."""
        group_repo = AsyncMock()
        group_repo.referral_code_exists = AsyncMock(return_value=True)

        with pytest.raises(TransientStoreError):
            await generate_unique_referral_code(group_repo, max_attempts=4)

        assert group_repo.referral_code_exists.await_count == 4
