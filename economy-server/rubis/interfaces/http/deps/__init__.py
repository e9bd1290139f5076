"""Reusable FastAPI dependencies."""

from .database import get_db_session
from .services import get_chest_service, get_ledger_service

__all__ = [
    "get_chest_service",
    "get_db_session",
    "get_ledger_service",
]
