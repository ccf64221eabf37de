"""
Request and response schemas.

Pydantic models for the HTTP surface.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JoinGroupRequest(BaseModel):
    """Inbound join request."""

    model_config = ConfigDict(extra="ignore")

    plan_id: int = Field(gt=0)
    user_id: int = Field(gt=0)
    referral_code: str | None = Field(default=None, max_length=20)


class JoinGroupResponse(BaseModel):
    status: str
    group_id: int | None = None
    participant_id: int | None = None
    referral_code: str | None = None
    position: int | None = None
    message: str | None = None
    offer_create_group: bool = False


class PaymentCallback(BaseModel):
    """Payment provider confirmation."""

    model_config = ConfigDict(extra="ignore")

    external_payment_ref: str = Field(min_length=1, max_length=255)
    participant_id: int = Field(gt=0)
    amount: Decimal | None = Field(default=None, gt=0)

    @field_validator("external_payment_ref")
    @classmethod
    def strip_ref(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("external_payment_ref must not be blank")
        return v


class PaymentCallbackResponse(BaseModel):
    status: str
    external_payment_ref: str
    message: str | None = None


class ParticipantView(BaseModel):
    id: int
    user_id: int
    position: int
    payment_status: str


class GroupView(BaseModel):
    id: int
    plan_id: int
    referral_code: str
    state: str
    capacity: int
    active_count: int
    paid_count: int
    vacancies: int
    contemplated_participant_id: int | None = None
    participants: list[ParticipantView]


class BalanceView(BaseModel):
    user_id: int
    balance: str
    consistent: bool
