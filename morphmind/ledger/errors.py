"""
Ledger error taxonomy.

Every error surfaced to the calling interface derives from LedgerError.
"""


class LedgerError(Exception):
    """Base class for ledger failures."""
    pass


class NotFoundError(LedgerError):
    """Raised when a user, position or source id is unknown."""
    pass


class AlreadyExistsError(LedgerError):
    """Raised when creating a record whose id is already taken."""
    pass


class InvalidAmountError(LedgerError):
    """Raised when an amount is not finite, not positive, or outside configured bounds."""
    pass


class InsufficientBalanceError(LedgerError):
    """Raised when an amount exceeds the user's liquid balance."""
    pass


class NoActiveStakesError(LedgerError):
    """Raised when withdrawing from a user without live positions."""
    pass


class NoActiveSourceError(LedgerError):
    """Raised when no source is active for selection."""
    pass


class PersistenceError(LedgerError):
    """Raised when a user-triggered change could not be saved (change rolled back)."""
    pass
