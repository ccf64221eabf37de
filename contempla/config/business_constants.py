"""
Business logic constants for Contempla.

Central location for business rules shared by services, jobs and the API.
"""

from decimal import Decimal

# Money is kept in cents (BRL)
MONEY_QUANTUM = Decimal("0.01")

# Default plan shape: pay 10%, group of 10
DEFAULT_GROUP_CAPACITY = 10
DEFAULT_ENTRY_FRACTION = Decimal("0.10")
MIN_GROUP_CAPACITY = 2

# Referral codes: 8 chars from A-Z0-9
REFERRAL_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Prefix for payment refs generated when the entry fee is paid from credits
CREDIT_PAYMENT_REF_PREFIX = "credits:"

# User-facing messages for expected conditions
MSG_GROUP_FULL = "This group just filled. You can start a new group instead."
MSG_GROUP_NOT_ACCEPTING = (
    "This group is no longer accepting members. "
    "You can start a new group instead."
)
MSG_INVALID_REFERRAL_CODE = "Referral code not found."
MSG_ALREADY_MEMBER = "You already hold a seat in this group."
