"""
Unit tests for HTTP request schemas.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from api.schemas import JoinGroupRequest, PaymentCallback


class TestJoinGroupRequest:
    """Test join payload validation."""

    def test_without_code(self):
        payload = JoinGroupRequest.model_validate({"plan_id": 1, "user_id": 42})
        assert payload.referral_code is None

    def test_with_code(self):
        payload = JoinGroupRequest.model_validate(
            {"plan_id": 1, "user_id": 42, "referral_code": "AB12CD34"}
        )
        assert payload.referral_code == "AB12CD34"

    def test_rejects_non_positive_ids(self):
        with pytest.raises(ValidationError):
            JoinGroupRequest.model_validate({"plan_id": 0, "user_id": 42})

    def test_unknown_fields_ignored(self):
        payload = JoinGroupRequest.model_validate(
            {"plan_id": 1, "user_id": 42, "source": "landing"}
        )
        assert payload.user_id == 42


class TestPaymentCallback:
    """Test provider callback validation."""

    def test_minimal(self):
        payload = PaymentCallback.model_validate(
            {"external_payment_ref": "pay-1", "participant_id": 3}
        )
        assert payload.amount is None

    def test_amount_parsed_as_decimal(self):
        payload = PaymentCallback.model_validate(
            {"external_payment_ref": "pay-1", "participant_id": 3, "amount": "100.00"}
        )
        assert payload.amount == Decimal("100.00")

    def test_ref_stripped(self):
        payload = PaymentCallback.model_validate(
            {"external_payment_ref": "  pay-1 ", "participant_id": 3}
        )
        assert payload.external_payment_ref == "pay-1"

    def test_blank_ref_rejected(self):
        with pytest.raises(ValidationError):
            PaymentCallback.model_validate(
                {"external_payment_ref": "   ", "participant_id": 3}
            )

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValidationError):
            PaymentCallback.model_validate(
                {"external_payment_ref": "pay-1", "participant_id": 3, "amount": "0"}
            )
