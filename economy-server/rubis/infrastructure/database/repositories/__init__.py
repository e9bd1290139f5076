"""SQLAlchemy-backed repository implementations."""

from .chest_repository import SqlChestRepository
from .ledger_repository import SqlLedgerRepository
from .stream_repository import SqlStreamDirectory

__all__ = [
    "SqlChestRepository",
    "SqlLedgerRepository",
    "SqlStreamDirectory",
]
