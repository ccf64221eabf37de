"""
Exception handling utilities.

Defines categorized exception types for proper error handling.

ExpectedCondition subclasses are outcomes a caller must handle (a full
group, an unknown referral code). They carry a stable ``code`` that the API
maps to a response. TransientStoreError means the store could not complete
the operation after retries and the caller may try again later.
InvariantViolation means persisted data breaks a rule the engine relies on.
"""

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class ContemplaError(Exception):
    """Base class for engine errors."""
    pass


class ExpectedCondition(ContemplaError):
    """A business outcome the caller is expected to handle."""

    code = "expected_condition"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class GroupFull(ExpectedCondition):
    """Group has no vacancy."""

    code = "group_full"


class GroupNotAcceptingMembers(ExpectedCondition):
    """Group is contemplating or completed."""

    code = "group_not_accepting_members"


class InvalidReferralCode(ExpectedCondition):
    """Referral code unknown or not valid for the requested plan."""

    code = "invalid_referral_code"


class AlreadyMember(ExpectedCondition):
    """User already holds an active seat in the group."""

    code = "already_member"


class PlanNotFound(ExpectedCondition):
    code = "plan_not_found"


class GroupNotFound(ExpectedCondition):
    code = "group_not_found"


class ParticipantNotFound(ExpectedCondition):
    code = "participant_not_found"


class InsufficientBalance(ExpectedCondition):
    """Debit would take the balance below zero."""

    code = "insufficient_balance"


class WithdrawalNotAllowed(ExpectedCondition):
    """Withdrawal request rejected by business rules."""

    code = "withdrawal_not_allowed"


class InvariantViolation(ContemplaError):
    """Persisted state breaks an engine invariant."""
    pass


class ConcurrencyConflict(ContemplaError):
    """Optimistic version check lost against a concurrent writer."""
    pass


class TransientStoreError(ContemplaError):
    """Store kept failing after all retry attempts."""
    pass


# Exception categories based on handling strategy

# Retry with backoff - conflicts and lock/connection failures
RETRYABLE = (
    ConcurrencyConflict,
    IntegrityError,     # Lost a unique-constraint race
    OperationalError,   # Lock timeout, deadlock, dropped connection
)

# Return to caller as a business outcome
EXPECTED = (
    ExpectedCondition,
)


def is_retryable(exc: Exception) -> bool:
    """
    Check if the operation that raised ``exc`` may be retried.

    Args:
        exc: Exception to check

    Returns:
        True if a retry may succeed
    """
    if isinstance(exc, RETRYABLE):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def is_transient(exc: Exception) -> bool:
    """
    Check if exception reports a temporary store failure.

    Args:
        exc: Exception to check

    Returns:
        True for TransientStoreError or a retryable store error
    """
    return isinstance(exc, TransientStoreError) or is_retryable(exc)


def is_expected(exc: Exception) -> bool:
    """
    Check if exception is a business outcome.

    Args:
        exc: Exception to check

    Returns:
        True if exception is an ExpectedCondition
    """
    return isinstance(exc, EXPECTED)
