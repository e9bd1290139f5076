"""Repository protocol for streamer chests."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, Sequence

from rubis.db.models import (
    ChestAutoState,
    ChestOpening,
    ChestParticipant,
    ChestPayout,
    StreamerChest,
    StreamerChestLot,
)


class ChestRepository(Protocol):
    async def lock_chest(self, streamer_id: str) -> StreamerChest:
        ...

    def touch_chest(self, chest: StreamerChest, now: datetime) -> None:
        ...

    async def lock_chest_lots(self, streamer_id: str) -> list[StreamerChestLot]:
        ...

    async def add_chest_lot(
        self,
        *,
        streamer_id: str,
        origin: str,
        weight_bp: int,
        amount: int,
        meta: dict[str, Any] | None,
    ) -> StreamerChestLot:
        ...

    async def settle_chest_lots(self, lots: Sequence[StreamerChestLot]) -> None:
        ...

    async def chest_balance(self, streamer_id: str) -> int:
        ...

    async def chest_breakdown(self, streamer_id: str) -> dict[str, int]:
        ...

    async def get_open_opening(self, streamer_id: str, *, lock: bool = False) -> ChestOpening | None:
        ...

    async def get_opening(self, opening_id: int, *, lock: bool = False) -> ChestOpening | None:
        ...

    async def create_opening(
        self,
        *,
        streamer_id: str,
        created_by_user_id: str,
        opens_at: datetime,
        closes_at: datetime,
        min_watch_minutes: int,
    ) -> ChestOpening:
        ...

    async def mark_closed(self, opening: ChestOpening, *, closed_by: str, now: datetime) -> None:
        ...

    async def list_expired_openings(self, now: datetime, limit: int) -> Sequence[ChestOpening]:
        ...

    async def get_participant(self, opening_id: int, user_id: str) -> ChestParticipant | None:
        ...

    async def add_participant(self, opening_id: int, user_id: str, joined_at: datetime) -> ChestParticipant:
        ...

    async def list_participant_ids(self, opening_id: int) -> list[str]:
        ...

    async def count_participants(self, opening_id: int) -> int:
        ...

    async def add_payout(
        self,
        *,
        opening_id: int,
        user_id: str,
        amount: int,
        breakdown: dict[str, int],
        tx_id: int | None,
    ) -> ChestPayout:
        ...

    async def list_payouts(self, opening_id: int) -> Sequence[ChestPayout]:
        ...

    async def lock_auto_state(self, streamer_id: str) -> ChestAutoState | None:
        ...

    async def create_auto_state(self, streamer_id: str, last_bucket_ts: datetime) -> ChestAutoState:
        ...
