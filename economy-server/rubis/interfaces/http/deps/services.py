"""Domain service providers bound to the request session."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rubis.domain.chest.service import ChestService
from rubis.domain.ledger.service import LedgerService

from .database import get_db_session


def get_ledger_service(db: AsyncSession = Depends(get_db_session)) -> LedgerService:
    return LedgerService.with_session(db)


def get_chest_service(db: AsyncSession = Depends(get_db_session)) -> ChestService:
    return ChestService.with_session(db)


__all__ = [
    "get_chest_service",
    "get_ledger_service",
]
