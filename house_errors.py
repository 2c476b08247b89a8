"""Error taxonomy shared by the core and its collaborators."""

from enum import Enum


class FailureReason(Enum):
    INVALID_BET = "invalid_bet"
    INVALID_OUTCOME = "invalid_outcome"
    PAYOUT_TOO_SMALL = "payout_too_small"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    HOURLY_CAP_EXCEEDED = "hourly_cap_exceeded"
    TRANSFER_FAILED = "transfer_failed"


class HouseBotError(Exception):
    pass


class ConfigError(HouseBotError):
    """Fatal at startup."""


class ValidationError(HouseBotError):
    """Malformed or out-of-range settlement request."""


class AuthorizationDenied(HouseBotError):
    """Local payout policy said no. Never retried."""

    def __init__(self, reason: FailureReason, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(detail or reason.value)


class CollaboratorFailure(HouseBotError):
    """A delegated chain or swap call failed. Terminal for the operation."""


class BalanceError(CollaboratorFailure):
    pass


class TransferError(CollaboratorFailure):
    pass


class ClaimError(CollaboratorFailure):
    pass


class QuoteError(CollaboratorFailure):
    pass


class SwapError(CollaboratorFailure):
    pass


class BurnError(CollaboratorFailure):
    pass
