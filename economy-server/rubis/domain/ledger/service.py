"""Ledger domain service.

Each public mutation is meant to run inside one database transaction owned by
the caller (the HTTP session dependency or ``transaction()``). The service only
flushes; on any raised error the caller rolls the whole unit back.

Lock order: user rows (ascending id), then the spender's lot rows (ascending id).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rubis.core.config import Settings, get_settings
from rubis.db.models import RubisLot as LotModel, RubisTx as TxModel
from rubis.domain.streams.repository import StreamDirectory
from rubis.infrastructure.database.repositories.ledger_repository import SqlLedgerRepository
from rubis.infrastructure.database.repositories.stream_repository import SqlStreamDirectory

from . import allocation as engine
from .exceptions import BadAmount, InsufficientBalance, UserNotFound
from .models import (
    BP_SCALE,
    ENTITY_PLATFORM_BURN,
    ENTITY_PLATFORM_FEE,
    ENTITY_USER,
    CashoutResult,
    ConsistencyReport,
    Direction,
    EntryLine,
    Lot,
    MintResult,
    ModPayout,
    RubisOrigin,
    SinkResult,
    SupportResult,
    TransactionRecord,
    TxKind,
    WalletSnapshot,
)
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


def require_positive(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadAmount(f"amount must be a positive integer, got {amount!r}")


def _origin_name(origin: RubisOrigin | str) -> str:
    return origin.value if isinstance(origin, RubisOrigin) else str(origin)


@dataclass(slots=True)
class LedgerService:
    repository: LedgerRepository
    streams: StreamDirectory
    weights: Mapping[str, int] = field(default_factory=dict)
    platform_fee_bp: int = 1000

    @classmethod
    def with_session(cls, session: AsyncSession, settings: Optional[Settings] = None) -> "LedgerService":
        settings = settings or get_settings()
        return cls(
            repository=SqlLedgerRepository(session),
            streams=SqlStreamDirectory(session),
            weights=dict(settings.economy.origin_weights),
            platform_fee_bp=settings.economy.platform_fee_bp,
        )

    def weight_for(self, origin: RubisOrigin | str) -> int:
        name = _origin_name(origin)
        weight = self.weights.get(name)
        if weight is None:
            logger.warning("No weight configured for origin %s, minting at 0bp", name)
            return 0
        return max(0, min(BP_SCALE, int(weight)))

    async def mint(
        self,
        *,
        user_id: str,
        amount: int,
        origin: RubisOrigin | str,
        meta: dict[str, Any] | None = None,
    ) -> MintResult:
        require_positive(amount)
        origin_name = _origin_name(origin)
        weight_bp = self.weight_for(origin_name)

        users = await self.repository.lock_users([user_id])
        self.repository.adjust_balance(users[user_id], amount)

        tx = await self.repository.add_transaction(
            kind=TxKind.MINT.value,
            purpose=origin_name,
            amount=amount,
            to_user_id=user_id,
            meta=meta,
        )
        lot = await self.repository.create_lot(
            user_id=user_id,
            origin=origin_name,
            weight_bp=weight_bp,
            amount=amount,
            meta={**(meta or {}), "tx_id": tx.id},
        )
        await self.repository.add_entries(tx.id, [EntryLine(ENTITY_USER, user_id, amount)])

        logger.info("Minted %s rubis (%s, %sbp) to %s in tx %s", amount, origin_name, weight_bp, user_id, tx.id)
        return MintResult(
            tx_id=tx.id,
            user_id=user_id,
            amount=amount,
            origin=origin_name,
            weight_bp=weight_bp,
            lot_id=lot.id,
        )

    async def sink(
        self,
        *,
        user_id: str,
        amount: int,
        purpose: str,
        meta: dict[str, Any] | None = None,
    ) -> SinkResult:
        require_positive(amount)
        users = await self.repository.lock_users([user_id])
        user = users[user_id]
        if user.rubis < amount:
            raise InsufficientBalance(f"{user_id} holds {user.rubis}, needs {amount}")

        lots = await self.repository.lock_lots(user_id)
        allocations = engine.allocate(lots, amount, Direction.ASCENDING)
        await self.repository.consume(lots, allocations)
        self.repository.adjust_balance(user, -amount)

        tx = await self.repository.add_transaction(
            kind=TxKind.SINK.value,
            purpose=purpose,
            amount=amount,
            from_user_id=user_id,
            burn_amount=amount,
            meta=meta,
        )
        await self.repository.add_tx_lots(tx.id, allocations)
        await self.repository.add_entries(
            tx.id,
            [
                EntryLine(ENTITY_USER, user_id, -amount),
                EntryLine(ENTITY_PLATFORM_BURN, None, amount),
            ],
        )

        logger.info("Sink %s rubis from %s for %s in tx %s", amount, user_id, purpose, tx.id)
        return SinkResult(tx_id=tx.id, amount=amount, burn_amount=amount, allocations=allocations)

    async def support(
        self,
        *,
        user_id: str,
        streamer_id: str,
        streamer_owner_id: str,
        amount: int,
        purpose: str,
        meta: dict[str, Any] | None = None,
        mods_percent_bp: int | None = None,
    ) -> SupportResult:
        require_positive(amount)
        if mods_percent_bp is None:
            streamer = await self.streams.get_streamer(streamer_id)
            mods_percent_bp = streamer.mods_percent_bp if streamer else 0
        mods_percent_bp = max(0, min(BP_SCALE, mods_percent_bp))
        moderator_ids = await self.streams.active_moderator_ids(streamer_id)

        users = await self.repository.lock_users([user_id, streamer_owner_id, *moderator_ids])
        viewer = users[user_id]
        if viewer.rubis < amount:
            raise InsufficientBalance(f"{user_id} holds {viewer.rubis}, needs {amount}")

        lots = await self.repository.lock_lots(user_id)
        allocations = engine.allocate(lots, amount, Direction.DESCENDING)

        value = engine.support_value(allocations)
        split = engine.split_support(
            value,
            mods_percent_bp=mods_percent_bp,
            moderator_ids=moderator_ids,
            platform_fee_bp=self.platform_fee_bp,
        )
        paid_out = split.streamer_amount + split.mods_total + split.platform_amount
        burn_amount = amount - paid_out

        await self.repository.consume(lots, allocations)
        self.repository.adjust_balance(viewer, -amount)

        mods_paid = [ModPayout(user_id=mod_id, amount=share) for mod_id, share in split.mod_shares]
        tx = await self.repository.add_transaction(
            kind=TxKind.SUPPORT.value,
            purpose=purpose,
            amount=amount,
            from_user_id=user_id,
            to_user_id=streamer_owner_id,
            streamer_id=streamer_id,
            support_value=value,
            streamer_amount=split.winners,
            platform_amount=split.platform_amount,
            burn_amount=burn_amount,
            meta={
                **(meta or {}),
                "streamer_id": streamer_id,
                "mods_percent_bp": mods_percent_bp,
                "mods_paid": [{"user_id": m.user_id, "amount": m.amount} for m in mods_paid],
                "mods_redirected": split.mods_redirected,
            },
        )
        await self.repository.add_tx_lots(tx.id, allocations)

        payees: list[tuple[tuple[str, str], int]] = []
        if split.streamer_credit > 0:
            payees.append((("streamer", streamer_owner_id), split.streamer_credit))
        payees.extend((("mod", m.user_id), m.amount) for m in mods_paid)

        carved = engine.carve_value(allocations, payees)
        for (role, payee_id), parts in carved.items():
            self.repository.adjust_balance(users[payee_id], sum(parts.values()))
            for weight_bp, part in sorted(parts.items(), reverse=True):
                await self.repository.create_lot(
                    user_id=payee_id,
                    origin=RubisOrigin.EARN_SUPPORT.value,
                    weight_bp=weight_bp,
                    amount=part,
                    meta={"tx_id": tx.id, "streamer_id": streamer_id, "purpose": purpose, "as": role},
                )

        entries = [EntryLine(ENTITY_USER, user_id, -amount)]
        if split.platform_amount > 0:
            entries.append(EntryLine(ENTITY_PLATFORM_FEE, None, split.platform_amount))
        if burn_amount > 0:
            entries.append(EntryLine(ENTITY_PLATFORM_BURN, None, burn_amount))
        if split.streamer_credit > 0:
            entries.append(EntryLine(ENTITY_USER, streamer_owner_id, split.streamer_credit))
        entries.extend(EntryLine(ENTITY_USER, m.user_id, m.amount) for m in mods_paid)
        await self.repository.add_entries(tx.id, entries)

        logger.info(
            "Support tx %s: %s rubis from %s to streamer %s (value=%s platform=%s mods=%s burn=%s)",
            tx.id,
            amount,
            user_id,
            streamer_id,
            value,
            split.platform_amount,
            split.mods_total,
            burn_amount,
        )
        return SupportResult(
            tx_id=tx.id,
            amount=amount,
            support_value=value,
            platform_amount=split.platform_amount,
            mods_total=split.mods_total,
            streamer_amount=split.streamer_amount,
            burn_amount=burn_amount,
            allocations=allocations,
            mods_paid=mods_paid,
            mods_redirected=split.mods_redirected,
        )

    async def cashout(
        self,
        *,
        streamer_owner_id: str,
        streamer_id: str,
        target_value_cents: int,
        meta: dict[str, Any] | None = None,
    ) -> CashoutResult:
        require_positive(target_value_cents)
        users = await self.repository.lock_users([streamer_owner_id])
        owner = users[streamer_owner_id]
        if owner.rubis <= 0:
            raise InsufficientBalance(f"{streamer_owner_id} has no rubis to cash out")

        lots = await self.repository.lock_lots(streamer_owner_id)
        allocations = engine.allocate_for_value(lots, target_value_cents)
        debited = sum(a.amount for a in allocations)

        await self.repository.consume(lots, allocations)
        self.repository.adjust_balance(owner, -debited)

        tx = await self.repository.add_transaction(
            kind=TxKind.CASHOUT.value,
            purpose="cashout_request",
            amount=debited,
            from_user_id=streamer_owner_id,
            streamer_id=streamer_id,
            support_value=target_value_cents,
            burn_amount=debited,
            meta={**(meta or {}), "streamer_id": streamer_id},
        )
        await self.repository.add_tx_lots(tx.id, allocations)
        await self.repository.add_entries(
            tx.id,
            [
                EntryLine(ENTITY_USER, streamer_owner_id, -debited),
                EntryLine(ENTITY_PLATFORM_BURN, None, debited),
            ],
        )
        note = (meta or {}).get("note")
        request = await self.repository.add_cashout_request(
            streamer_id=streamer_id,
            amount_rubis=debited,
            value_cents=target_value_cents,
            tx_id=tx.id,
            note=str(note) if note else None,
        )

        logger.info(
            "Cashout request %s: %s cents for %s rubis from %s (tx %s)",
            request.id,
            target_value_cents,
            debited,
            streamer_owner_id,
            tx.id,
        )
        return CashoutResult(
            tx_id=tx.id,
            request_id=request.id,
            value_cents=target_value_cents,
            rubis_debited=debited,
            allocations=allocations,
        )

    async def get_wallet(self, user_id: str) -> WalletSnapshot:
        user = await self.repository.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        lots = [self._to_lot(model) for model in await self.repository.list_lots(user_id)]
        value = sum(engine.lot_value(lot.amount_remaining, lot.weight_bp) for lot in lots)
        return WalletSnapshot(user_id=user_id, balance=user.rubis, value_cents=value, lots=lots)

    async def list_transactions(self, user_id: str, limit: int = 20, offset: int = 0) -> list[TransactionRecord]:
        rows = await self.repository.list_transactions(user_id, limit, offset)
        return [self._to_transaction(row) for row in rows]

    async def check_consistency(self, user_id: str) -> ConsistencyReport:
        user = await self.repository.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        remaining = await self.repository.sum_lots(user_id)
        report = ConsistencyReport(user_id=user_id, balance=user.rubis, lots_remaining=remaining)
        if not report.consistent:
            logger.error("Balance drift for %s: balance=%s lots=%s", user_id, user.rubis, remaining)
        return report

    @staticmethod
    def _to_lot(model: LotModel) -> Lot:
        return Lot(
            id=model.id,
            origin=model.origin,
            weight_bp=model.weight_bp,
            amount_total=model.amount_total,
            amount_remaining=model.amount_remaining,
            created_at=model.created_at,
            meta=json.loads(model.meta or "{}"),
        )

    @staticmethod
    def _to_transaction(model: TxModel) -> TransactionRecord:
        return TransactionRecord(
            id=model.id,
            kind=model.kind,
            purpose=model.purpose,
            status=model.status,
            from_user_id=model.from_user_id,
            to_user_id=model.to_user_id,
            streamer_id=model.streamer_id,
            amount=model.amount,
            support_value=model.support_value,
            streamer_amount=model.streamer_amount,
            platform_amount=model.platform_amount,
            burn_amount=model.burn_amount,
            created_at=model.created_at,
            meta=json.loads(model.meta or "{}"),
        )
