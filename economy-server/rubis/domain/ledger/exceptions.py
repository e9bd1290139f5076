"""Ledger domain specific exceptions."""


class LedgerError(Exception):
    """Base class for ledger errors. ``code`` is the stable identifier exposed to callers."""

    code = "ledger_error"


class BadAmount(LedgerError):
    """Raised when an amount is zero or negative."""

    code = "bad_amount"


class UserNotFound(LedgerError):
    """Raised when an account referenced by an operation does not exist."""

    code = "user_not_found"


class InsufficientBalance(LedgerError):
    """Raised when the cached balance cannot cover the requested amount."""

    code = "insufficient_balance"


class InsufficientLots(LedgerError):
    """Raised when the lots cannot cover an amount the cached balance claimed to hold.

    This signals drift between ``users.rubis`` and the lot remainders.
    """

    code = "insufficient_lots"


class InsufficientValue(LedgerError):
    """Raised when the weighted value of every lot cannot reach a cashout target."""

    code = "insufficient_value"
