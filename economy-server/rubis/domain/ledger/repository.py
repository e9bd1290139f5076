"""Repository protocol for ledger operations."""

from __future__ import annotations

from typing import Any, Iterable, Protocol, Sequence

from rubis.db.models import CashoutRequest, RubisLot, RubisTx, RubisTxEntry, RubisTxLot, User

from .models import Allocation, EntryLine


class LedgerRepository(Protocol):
    async def get_user(self, user_id: str) -> User | None:
        ...

    async def lock_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        ...

    async def lock_lots(self, user_id: str) -> list[RubisLot]:
        ...

    async def consume(self, lots: Sequence[RubisLot], allocations: Sequence[Allocation]) -> None:
        ...

    def adjust_balance(self, user: User, delta: int) -> None:
        ...

    async def create_lot(
        self,
        *,
        user_id: str,
        origin: str,
        weight_bp: int,
        amount: int,
        meta: dict[str, Any] | None,
    ) -> RubisLot:
        ...

    async def add_transaction(
        self,
        *,
        kind: str,
        purpose: str,
        amount: int,
        from_user_id: str | None = None,
        to_user_id: str | None = None,
        streamer_id: str | None = None,
        support_value: int = 0,
        streamer_amount: int = 0,
        platform_amount: int = 0,
        burn_amount: int = 0,
        meta: dict[str, Any] | None = None,
    ) -> RubisTx:
        ...

    async def add_tx_lots(self, tx_id: int, allocations: Sequence[Allocation]) -> None:
        ...

    async def add_entries(self, tx_id: int, entries: Sequence[EntryLine]) -> None:
        ...

    async def add_cashout_request(
        self,
        *,
        streamer_id: str,
        amount_rubis: int,
        value_cents: int,
        tx_id: int,
        note: str | None,
    ) -> CashoutRequest:
        ...

    async def list_lots(self, user_id: str, include_empty: bool = False) -> Sequence[RubisLot]:
        ...

    async def list_transactions(self, user_id: str, limit: int, offset: int) -> Sequence[RubisTx]:
        ...

    async def list_entries(self, tx_id: int) -> Sequence[RubisTxEntry]:
        ...

    async def list_tx_lots(self, tx_id: int) -> Sequence[RubisTxLot]:
        ...

    async def sum_lots(self, user_id: str) -> int:
        ...
