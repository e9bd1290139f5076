"""SQLAlchemy implementation for the rubis ledger."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from sqlalchemy import desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rubis.db.models import CashoutRequest, RubisLot, RubisTx, RubisTxEntry, RubisTxLot, User
from rubis.domain.ledger.exceptions import InsufficientLots, UserNotFound
from rubis.domain.ledger.models import Allocation, EntryLine


def dump_meta(meta: dict[str, Any] | None) -> str:
    return json.dumps(meta or {}, ensure_ascii=False, sort_keys=True)


class SqlLedgerRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_user(self, user_id: str) -> User | None:
        return await self.session.get(User, user_id)

    async def lock_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        wanted = sorted(set(user_ids))
        stmt = select(User).where(User.id.in_(wanted)).order_by(User.id).with_for_update()
        result = await self.session.execute(stmt)
        users = {user.id: user for user in result.scalars().all()}
        missing = [user_id for user_id in wanted if user_id not in users]
        if missing:
            raise UserNotFound(", ".join(missing))
        return users

    async def lock_lots(self, user_id: str) -> list[RubisLot]:
        stmt = (
            select(RubisLot)
            .where(RubisLot.user_id == user_id, RubisLot.amount_remaining > 0)
            .order_by(RubisLot.id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def consume(self, lots: Sequence[RubisLot], allocations: Sequence[Allocation]) -> None:
        by_id = {lot.id: lot for lot in lots}
        for allocation in allocations:
            lot = by_id.get(allocation.lot_id)
            if lot is None or lot.amount_remaining < allocation.amount:
                raise InsufficientLots(f"lot {allocation.lot_id} cannot cover {allocation.amount}")
            lot.amount_remaining -= allocation.amount
        await self.session.flush()

    def adjust_balance(self, user: User, delta: int) -> None:
        user.rubis = (user.rubis or 0) + delta

    async def create_lot(
        self,
        *,
        user_id: str,
        origin: str,
        weight_bp: int,
        amount: int,
        meta: dict[str, Any] | None,
    ) -> RubisLot:
        lot = RubisLot(
            user_id=user_id,
            origin=origin,
            weight_bp=weight_bp,
            amount_total=amount,
            amount_remaining=amount,
            created_at=datetime.now(timezone.utc),
            meta=dump_meta(meta),
        )
        self.session.add(lot)
        await self.session.flush()
        return lot

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
        tx = RubisTx(
            kind=kind,
            purpose=purpose,
            status="succeeded",
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            streamer_id=streamer_id,
            amount=amount,
            support_value=support_value,
            streamer_amount=streamer_amount,
            platform_amount=platform_amount,
            burn_amount=burn_amount,
            created_at=datetime.now(timezone.utc),
            meta=dump_meta(meta),
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def add_tx_lots(self, tx_id: int, allocations: Sequence[Allocation]) -> None:
        self.session.add_all(
            [
                RubisTxLot(
                    tx_id=tx_id,
                    lot_id=a.lot_id,
                    origin=a.origin,
                    weight_bp=a.weight_bp,
                    amount_used=a.amount,
                )
                for a in allocations
            ]
        )
        await self.session.flush()

    async def add_entries(self, tx_id: int, entries: Sequence[EntryLine]) -> None:
        self.session.add_all(
            [
                RubisTxEntry(tx_id=tx_id, entity=e.entity, user_id=e.user_id, delta=e.delta)
                for e in entries
            ]
        )
        await self.session.flush()

    async def add_cashout_request(
        self,
        *,
        streamer_id: str,
        amount_rubis: int,
        value_cents: int,
        tx_id: int,
        note: str | None,
    ) -> CashoutRequest:
        request = CashoutRequest(
            streamer_id=streamer_id,
            amount_rubis=amount_rubis,
            value_cents=value_cents,
            status="pending",
            tx_id=tx_id,
            note=note,
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def list_lots(self, user_id: str, include_empty: bool = False) -> list[RubisLot]:
        stmt = select(RubisLot).where(RubisLot.user_id == user_id)
        if not include_empty:
            stmt = stmt.where(RubisLot.amount_remaining > 0)
        result = await self.session.execute(stmt.order_by(RubisLot.id))
        return list(result.scalars().all())

    async def list_transactions(self, user_id: str, limit: int, offset: int) -> list[RubisTx]:
        stmt = (
            select(RubisTx)
            .where(or_(RubisTx.from_user_id == user_id, RubisTx.to_user_id == user_id))
            .order_by(desc(RubisTx.id))
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_entries(self, tx_id: int) -> list[RubisTxEntry]:
        stmt = select(RubisTxEntry).where(RubisTxEntry.tx_id == tx_id).order_by(RubisTxEntry.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_tx_lots(self, tx_id: int) -> list[RubisTxLot]:
        stmt = select(RubisTxLot).where(RubisTxLot.tx_id == tx_id).order_by(RubisTxLot.lot_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def sum_lots(self, user_id: str) -> int:
        stmt = select(func.coalesce(func.sum(RubisLot.amount_remaining), 0)).where(
            RubisLot.user_id == user_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())
