"""Ledger domain exports"""

from .exceptions import (
    BadAmount,
    InsufficientBalance,
    InsufficientLots,
    InsufficientValue,
    LedgerError,
    UserNotFound,
)
from .models import (
    Allocation,
    CashoutResult,
    Direction,
    MintResult,
    RubisOrigin,
    SinkResult,
    SupportResult,
    WalletSnapshot,
)

__all__ = [
    "Allocation",
    "BadAmount",
    "CashoutResult",
    "Direction",
    "InsufficientBalance",
    "InsufficientLots",
    "InsufficientValue",
    "LedgerError",
    "MintResult",
    "RubisOrigin",
    "SinkResult",
    "SupportResult",
    "UserNotFound",
    "WalletSnapshot",
]
