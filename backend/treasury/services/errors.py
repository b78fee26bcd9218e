# Overview: Error taxonomy shared by the cash-register and commission services.

"""
Every service error derives from TreasuryError so callers can catch the
family they care about:

- InvalidStateError: entity not in the required state. Raised before any
  mutation; the unit of work rolls back anything already staged.
- DataIntegrityError: upstream data is missing or misconfigured such that a
  computed money value would be meaningless. Never defaulted to zero.
- RequestError: the caller asked for something invalid or with no effect.
- NotFoundError: referenced entity does not exist.
"""


class TreasuryError(Exception):
    """Base class for treasury service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TreasuryError):
    pass


# =============================================================================
# INVALID STATE
# =============================================================================

class InvalidStateError(TreasuryError):
    pass


class SessionClosed(InvalidStateError):
    pass


class SessionStillOpen(InvalidStateError):
    pass


class DuplicateOpenSession(InvalidStateError):
    pass


class AlreadyClosed(InvalidStateError):
    pass


class AlreadyCancelled(InvalidStateError):
    pass


class AlreadyVoided(InvalidStateError):
    pass


class PayoutLocked(InvalidStateError):
    """Commission payout still backing a paid liquidation."""


class ClaimedByLiquidation(InvalidStateError):
    """Service payment consumed by a draft or approved liquidation."""


class NotDraft(InvalidStateError):
    pass


class NotApproved(InvalidStateError):
    pass


class NotPaid(InvalidStateError):
    pass


class AlreadyReverted(InvalidStateError):
    pass


class CannotCancelPaid(InvalidStateError):
    pass


class LiquidationAlreadyCancelled(InvalidStateError):
    pass


class AlreadyLiquidated(InvalidStateError):
    """A service payment was claimed by another liquidation concurrently."""


# =============================================================================
# DATA INTEGRITY
# =============================================================================

class DataIntegrityError(TreasuryError):
    def __init__(self, message: str, *, transaction_id: int | None = None, service_id: int | None = None):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.service_id = service_id


class MissingCommissionConfiguration(DataIntegrityError):
    pass


# =============================================================================
# REQUEST ERRORS
# =============================================================================

class RequestError(TreasuryError):
    pass


class InvalidAmount(RequestError):
    pass


class EmptySelection(RequestError):
    pass


class InvalidPeriod(RequestError):
    pass
