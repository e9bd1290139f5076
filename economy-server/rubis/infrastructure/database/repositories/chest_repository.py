"""SQLAlchemy implementation for streamer chests."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import desc, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from rubis.core.clock import utcnow
from rubis.db.models import (
    ChestAutoState,
    ChestOpening,
    ChestParticipant,
    ChestPayout,
    StreamerChest,
    StreamerChestLot,
)
from rubis.domain.chest.models import OPENING_CLOSED, OPENING_OPEN

from .ledger_repository import dump_meta


class SqlChestRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_chest(self, streamer_id: str) -> StreamerChest:
        stmt = select(StreamerChest).where(StreamerChest.streamer_id == streamer_id).with_for_update()
        result = await self.session.execute(stmt)
        chest = result.scalars().first()
        if chest is not None:
            return chest

        # A concurrent creator makes this flush fail; the unit is retried by the caller.
        chest = StreamerChest(streamer_id=streamer_id)
        self.session.add(chest)
        await self.session.flush()
        return chest

    def touch_chest(self, chest: StreamerChest, now: datetime) -> None:
        chest.updated_at = now

    async def lock_chest_lots(self, streamer_id: str) -> list[StreamerChestLot]:
        stmt = (
            select(StreamerChestLot)
            .where(StreamerChestLot.streamer_id == streamer_id, StreamerChestLot.amount_remaining > 0)
            .order_by(StreamerChestLot.id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_chest_lot(
        self,
        *,
        streamer_id: str,
        origin: str,
        weight_bp: int,
        amount: int,
        meta: dict[str, Any] | None,
    ) -> StreamerChestLot:
        lot = StreamerChestLot(
            streamer_id=streamer_id,
            origin=origin,
            weight_bp=weight_bp,
            amount_total=amount,
            amount_remaining=amount,
            created_at=utcnow(),
            meta=dump_meta(meta),
        )
        self.session.add(lot)
        await self.session.flush()
        return lot

    async def settle_chest_lots(self, lots: Sequence[StreamerChestLot]) -> None:
        for lot in lots:
            if lot.amount_remaining <= 0:
                await self.session.delete(lot)
        await self.session.flush()

    async def chest_balance(self, streamer_id: str) -> int:
        stmt = select(func.coalesce(func.sum(StreamerChestLot.amount_remaining), 0)).where(
            StreamerChestLot.streamer_id == streamer_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def chest_breakdown(self, streamer_id: str) -> dict[str, int]:
        stmt = (
            select(StreamerChestLot.weight_bp, func.sum(StreamerChestLot.amount_remaining))
            .where(StreamerChestLot.streamer_id == streamer_id, StreamerChestLot.amount_remaining > 0)
            .group_by(StreamerChestLot.weight_bp)
            .order_by(desc(StreamerChestLot.weight_bp))
        )
        result = await self.session.execute(stmt)
        return {str(weight): int(amount or 0) for weight, amount in result.all()}

    async def get_open_opening(self, streamer_id: str, *, lock: bool = False) -> ChestOpening | None:
        stmt = (
            select(ChestOpening)
            .where(ChestOpening.streamer_id == streamer_id, ChestOpening.status == OPENING_OPEN)
            .order_by(desc(ChestOpening.id))
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_opening(self, opening_id: int, *, lock: bool = False) -> ChestOpening | None:
        stmt = select(ChestOpening).where(ChestOpening.id == opening_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_opening(
        self,
        *,
        streamer_id: str,
        created_by_user_id: str,
        opens_at: datetime,
        closes_at: datetime,
        min_watch_minutes: int,
    ) -> ChestOpening:
        opening = ChestOpening(
            streamer_id=streamer_id,
            created_by_user_id=created_by_user_id,
            status=OPENING_OPEN,
            opens_at=opens_at,
            closes_at=closes_at,
            min_watch_minutes=min_watch_minutes,
            meta=dump_meta({}),
        )
        self.session.add(opening)
        await self.session.flush()
        return opening

    async def mark_closed(self, opening: ChestOpening, *, closed_by: str, now: datetime) -> None:
        meta = json.loads(opening.meta or "{}")
        meta["closed_by"] = closed_by
        opening.status = OPENING_CLOSED
        opening.closed_at = now
        opening.meta = dump_meta(meta)
        await self.session.flush()

    async def list_expired_openings(self, now: datetime, limit: int) -> list[ChestOpening]:
        stmt = (
            select(ChestOpening)
            .where(ChestOpening.status == OPENING_OPEN, ChestOpening.closes_at <= now)
            .order_by(ChestOpening.closes_at)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_participant(self, opening_id: int, user_id: str) -> ChestParticipant | None:
        return await self.session.get(ChestParticipant, (opening_id, user_id))

    async def add_participant(self, opening_id: int, user_id: str, joined_at: datetime) -> ChestParticipant:
        """Insert the participant row, keeping the existing one on a concurrent join."""
        insert = pg_insert if self.session.get_bind().dialect.name == "postgresql" else sqlite_insert
        stmt = (
            insert(ChestParticipant)
            .values(opening_id=opening_id, user_id=user_id, joined_at=joined_at)
            .on_conflict_do_nothing()
        )
        await self.session.execute(stmt)
        participant = await self.get_participant(opening_id, user_id)
        if participant is None:
            raise RuntimeError(f"participant {user_id} missing from opening {opening_id} after insert")
        return participant

    async def list_participant_ids(self, opening_id: int) -> list[str]:
        stmt = (
            select(ChestParticipant.user_id)
            .where(ChestParticipant.opening_id == opening_id)
            .order_by(ChestParticipant.joined_at, ChestParticipant.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_participants(self, opening_id: int) -> int:
        stmt = select(func.count()).where(ChestParticipant.opening_id == opening_id)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def add_payout(
        self,
        *,
        opening_id: int,
        user_id: str,
        amount: int,
        breakdown: dict[str, int],
        tx_id: int | None,
    ) -> ChestPayout:
        payout = ChestPayout(
            opening_id=opening_id,
            user_id=user_id,
            amount=amount,
            breakdown=json.dumps(breakdown, sort_keys=True),
            tx_id=tx_id,
        )
        self.session.add(payout)
        await self.session.flush()
        return payout

    async def list_payouts(self, opening_id: int) -> list[ChestPayout]:
        stmt = select(ChestPayout).where(ChestPayout.opening_id == opening_id).order_by(ChestPayout.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def lock_auto_state(self, streamer_id: str) -> ChestAutoState | None:
        stmt = select(ChestAutoState).where(ChestAutoState.streamer_id == streamer_id).with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_auto_state(self, streamer_id: str, last_bucket_ts: datetime) -> ChestAutoState:
        state = ChestAutoState(streamer_id=streamer_id, last_bucket_ts=last_bucket_ts, carry_minutes=0)
        self.session.add(state)
        await self.session.flush()
        return state
