"""Streamer chest domain service.

A chest is a per-streamer pool of rubis lots filled by the streamer (deposit)
and by watch time (auto-mint), then shared between viewers who join a timed
opening. Weights entering the chest are capped at ``chest_max_out_weight_bp``.

Like the ledger service, every public mutation runs inside a transaction owned
by the caller. Lock order: opening row, chest row, user rows (ascending id),
lot rows (ascending id).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rubis.core.clock import as_utc, utcnow
from rubis.core.config import Settings, get_settings
from rubis.db.models import (
    ChestOpening as OpeningModel,
    ChestParticipant as ParticipantModel,
    ChestPayout as PayoutModel,
    User as UserModel,
)
from rubis.domain.ledger import allocation as engine
from rubis.domain.ledger.exceptions import InsufficientBalance, UserNotFound
from rubis.domain.ledger.models import (
    ENTITY_CHEST,
    ENTITY_USER,
    Direction,
    EntryLine,
    RubisOrigin,
    TxKind,
)
from rubis.domain.ledger.repository import LedgerRepository
from rubis.domain.ledger.service import require_positive
from rubis.domain.streams.models import StreamerInfo, viewer_key
from rubis.domain.streams.repository import StreamDirectory
from rubis.infrastructure.database.repositories.chest_repository import SqlChestRepository
from rubis.infrastructure.database.repositories.ledger_repository import SqlLedgerRepository
from rubis.infrastructure.database.repositories.stream_repository import SqlStreamDirectory

from .exceptions import (
    AlreadyOpen,
    ChestEmptyRace,
    NeedWatchtime,
    NoOpening,
    NotWatching,
    OpeningClosed,
    OwnerForbidden,
    StreamerNotFound,
    StreamOffline,
)
from .models import (
    OPENING_OPEN,
    ORIGIN_CHEST_AUTO,
    ORIGIN_CHEST_DEPOSIT,
    AutoMintResult,
    ChestOpening,
    ChestParticipant,
    ChestPayout,
    ChestState,
    CloseResult,
    DepositResult,
)
from .payout import LotCursor, Shuffler, default_rng, split_pool
from .repository import ChestRepository

logger = logging.getLogger(__name__)

PURPOSE_CHEST_DEPOSIT = "chest_deposit"
PURPOSE_CHEST_PAYOUT = "chest_payout"


@dataclass(slots=True)
class ChestService:
    repository: ChestRepository
    ledger: LedgerRepository
    streams: StreamDirectory
    settings: Settings = field(default_factory=get_settings)
    rng: Shuffler = field(default_factory=default_rng)
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        rng: Optional[Shuffler] = None,
    ) -> "ChestService":
        return cls(
            repository=SqlChestRepository(session),
            ledger=SqlLedgerRepository(session),
            streams=SqlStreamDirectory(session),
            settings=settings or get_settings(),
            rng=rng or default_rng(),
        )

    @property
    def cap_bp(self) -> int:
        return self.settings.economy.chest_max_out_weight_bp

    def capped(self, weight_bp: int) -> int:
        return min(weight_bp, self.cap_bp)

    async def require_streamer(self, streamer_id: str) -> StreamerInfo:
        streamer = await self.streams.get_streamer(streamer_id)
        if streamer is None:
            raise StreamerNotFound(streamer_id)
        return streamer

    async def find_streamer(self, slug: str) -> StreamerInfo:
        streamer = await self.streams.get_streamer_by_slug(slug)
        if streamer is None:
            raise StreamerNotFound(slug)
        return streamer

    async def deposit(
        self,
        *,
        streamer_id: str,
        from_user_id: str,
        amount: int,
        note: Optional[str] = None,
    ) -> DepositResult:
        require_positive(amount)
        await self.require_streamer(streamer_id)
        now = self.clock()

        chest = await self.repository.lock_chest(streamer_id)
        users = await self.ledger.lock_users([from_user_id])
        user = users[from_user_id]
        if user.rubis < amount:
            raise InsufficientBalance(f"{from_user_id} holds {user.rubis}, needs {amount}")

        lots = await self.ledger.lock_lots(from_user_id)
        allocations = engine.allocate(lots, amount, Direction.ASCENDING)
        await self.ledger.consume(lots, allocations)
        self.ledger.adjust_balance(user, -amount)

        tx = await self.ledger.add_transaction(
            kind=TxKind.TRANSFER.value,
            purpose=PURPOSE_CHEST_DEPOSIT,
            amount=amount,
            from_user_id=from_user_id,
            streamer_id=streamer_id,
            meta={"note": note} if note else None,
        )
        await self.ledger.add_tx_lots(tx.id, allocations)
        await self.ledger.add_entries(
            tx.id,
            [
                EntryLine(ENTITY_USER, from_user_id, -amount),
                EntryLine(ENTITY_CHEST, None, amount),
            ],
        )

        chest_lot_ids: list[int] = []
        for a in allocations:
            chest_lot = await self.repository.add_chest_lot(
                streamer_id=streamer_id,
                origin=ORIGIN_CHEST_DEPOSIT,
                weight_bp=self.capped(a.weight_bp),
                amount=a.amount,
                meta={"from_lot_id": a.lot_id, "from_weight_bp": a.weight_bp, "tx_id": tx.id},
            )
            chest_lot_ids.append(chest_lot.id)
        self.repository.touch_chest(chest, now)

        balance = await self.repository.chest_balance(streamer_id)
        logger.info(
            "Chest deposit tx %s: %s rubis from %s into %s (balance=%s)",
            tx.id,
            amount,
            from_user_id,
            streamer_id,
            balance,
        )
        return DepositResult(tx_id=tx.id, amount=amount, chest_balance=balance, chest_lot_ids=chest_lot_ids)

    async def open(
        self,
        *,
        streamer_id: str,
        by_user_id: str,
        duration_seconds: Optional[int] = None,
        min_watch_minutes: Optional[int] = None,
    ) -> ChestOpening:
        economy = self.settings.economy
        await self.require_streamer(streamer_id)
        duration = max(economy.chest_min_duration_seconds, duration_seconds or economy.chest_default_duration_seconds)
        min_watch = max(1, min_watch_minutes or economy.chest_default_min_watch_minutes)

        await self.repository.lock_chest(streamer_id)
        if await self.repository.get_open_opening(streamer_id) is not None:
            raise AlreadyOpen(streamer_id)

        now = self.clock()
        try:
            opening = await self.repository.create_opening(
                streamer_id=streamer_id,
                created_by_user_id=by_user_id,
                opens_at=now,
                closes_at=now + timedelta(seconds=duration),
                min_watch_minutes=min_watch,
            )
        except IntegrityError as exc:
            raise AlreadyOpen(streamer_id) from exc

        logger.info("Chest opening %s for %s (%ss, min watch %s)", opening.id, streamer_id, duration, min_watch)
        return self._to_opening(opening)

    async def join(
        self,
        *,
        streamer_id: str,
        user_id: str,
        streamer_owner_id: Optional[str] = None,
    ) -> ChestParticipant:
        if streamer_owner_id is None:
            streamer_owner_id = (await self.require_streamer(streamer_id)).owner_user_id
        if streamer_owner_id is not None and user_id == streamer_owner_id:
            logger.warning("Join rejected for %s on %s: owner", user_id, streamer_id)
            raise OwnerForbidden(user_id)

        # Locked so a join cannot land after close has read the participants.
        opening = await self.repository.get_open_opening(streamer_id, lock=True)
        if opening is None:
            raise NoOpening(streamer_id)

        now = self.clock()
        if now >= as_utc(opening.closes_at):
            logger.warning("Join rejected for %s on opening %s: window over", user_id, opening.id)
            raise OpeningClosed(str(opening.id))

        live_session_id = await self.streams.current_live_session_id(streamer_id)
        if live_session_id is None:
            logger.warning("Join rejected for %s on %s: stream offline", user_id, streamer_id)
            raise StreamOffline(streamer_id)

        key = viewer_key(user_id)
        ttl = self.settings.economy.heartbeat_ttl_seconds
        if not await self.streams.has_recent_heartbeat(live_session_id, key, ttl, now):
            logger.warning("Join rejected for %s on %s: no heartbeat", user_id, streamer_id)
            raise NotWatching(user_id)

        watched = await self.streams.watched_minutes(live_session_id, key)
        if watched < opening.min_watch_minutes:
            logger.warning(
                "Join rejected for %s on %s: watched %s of %s minutes",
                user_id,
                streamer_id,
                watched,
                opening.min_watch_minutes,
            )
            raise NeedWatchtime(watched, opening.min_watch_minutes)

        existing = await self.repository.get_participant(opening.id, user_id)
        if existing is not None:
            return self._to_participant(existing)

        if await self.ledger.get_user(user_id) is None:
            raise UserNotFound(user_id)
        participant = await self.repository.add_participant(opening.id, user_id, now)
        logger.info("User %s joined chest opening %s", user_id, opening.id)
        return self._to_participant(participant)

    async def close(self, opening_id: int, closed_by: str) -> CloseResult:
        opening = await self.repository.get_opening(opening_id, lock=True)
        if opening is None:
            raise NoOpening(str(opening_id))
        if opening.status != OPENING_OPEN:
            payouts = await self.repository.list_payouts(opening_id)
            return CloseResult(
                opening_id=opening_id,
                already_closed=True,
                payouts=[self._to_payout(row) for row in payouts],
            )

        now = self.clock()
        streamer_id = opening.streamer_id
        chest = await self.repository.lock_chest(streamer_id)
        participant_ids = await self.repository.list_participant_ids(opening_id)
        users = await self.ledger.lock_users(participant_ids) if participant_ids else {}
        lots = engine.order_lots(await self.repository.lock_chest_lots(streamer_id), Direction.DESCENDING)
        total = sum(lot.amount_remaining for lot in lots)

        if total <= 0 or not participant_ids:
            await self.repository.mark_closed(opening, closed_by=closed_by, now=now)
            logger.info(
                "Chest opening %s closed with nothing to pay (pool=%s, participants=%s)",
                opening_id,
                total,
                len(participant_ids),
            )
            return CloseResult(opening_id=opening_id, already_closed=False, payouts=[])

        shares = split_pool(total, len(participant_ids), self.rng)
        cursor = LotCursor(lots)
        rows: list[PayoutModel] = []
        try:
            for user_id, share in zip(participant_ids, shares):
                if share <= 0:
                    continue
                parts = cursor.take(share)
                rows.append(await self._pay(opening_id, streamer_id, users[user_id], share, parts))
        except ChestEmptyRace:
            logger.error("Chest lots of %s ran dry while paying opening %s (pool=%s)", streamer_id, opening_id, total)
            raise

        await self.repository.settle_chest_lots(lots)
        self.repository.touch_chest(chest, now)
        await self.repository.mark_closed(opening, closed_by=closed_by, now=now)

        logger.info(
            "Chest opening %s closed by %s: %s rubis to %s participants",
            opening_id,
            closed_by,
            total,
            len(rows),
        )
        return CloseResult(
            opening_id=opening_id,
            already_closed=False,
            payouts=[self._to_payout(row) for row in rows],
        )

    async def _pay(
        self,
        opening_id: int,
        streamer_id: str,
        user: UserModel,
        share: int,
        parts: dict[int, int],
    ) -> PayoutModel:
        self.ledger.adjust_balance(user, share)
        tx = await self.ledger.add_transaction(
            kind=TxKind.TRANSFER.value,
            purpose=PURPOSE_CHEST_PAYOUT,
            amount=share,
            to_user_id=user.id,
            streamer_id=streamer_id,
            meta={"opening_id": opening_id},
        )
        await self.ledger.add_entries(
            tx.id,
            [
                EntryLine(ENTITY_CHEST, None, -share),
                EntryLine(ENTITY_USER, user.id, share),
            ],
        )
        for weight_bp, amount in sorted(parts.items(), reverse=True):
            await self.ledger.create_lot(
                user_id=user.id,
                origin=RubisOrigin.CHEST_STREAMER.value,
                weight_bp=self.capped(weight_bp),
                amount=amount,
                meta={"tx_id": tx.id, "opening_id": opening_id, "streamer_id": streamer_id},
            )
        return await self.repository.add_payout(
            opening_id=opening_id,
            user_id=user.id,
            amount=share,
            breakdown={str(weight): amount for weight, amount in parts.items()},
            tx_id=tx.id,
        )

    async def close_current(self, streamer_id: str, closed_by: str) -> CloseResult:
        opening = await self.repository.get_open_opening(streamer_id)
        if opening is None:
            raise NoOpening(streamer_id)
        return await self.close(opening.id, closed_by)

    async def list_expired_openings(self, limit: int) -> list[int]:
        openings = await self.repository.list_expired_openings(self.clock(), limit)
        return [opening.id for opening in openings]

    async def auto_mint_tick(self, streamer_id: str, now: Optional[datetime] = None) -> AutoMintResult:
        """Credit the chest for watch minutes completed since the last tick.

        Only whole past minutes count: the window ends one minute before the
        current minute. Minutes that do not fill a rule block carry over.
        """
        jobs = self.settings.jobs
        now = now or self.clock()
        to_ts = now.replace(second=0, microsecond=0) - timedelta(minutes=1)

        chest = await self.repository.lock_chest(streamer_id)
        state = await self.repository.lock_auto_state(streamer_id)
        if state is None:
            await self.repository.create_auto_state(streamer_id, to_ts)
            return AutoMintResult(streamer_id=streamer_id, minted=0, carry_minutes=0)

        last = as_utc(state.last_bucket_ts)
        carry = int(state.carry_minutes or 0)
        if last is not None and to_ts <= last:
            return AutoMintResult(streamer_id=streamer_id, minted=0, carry_minutes=carry)

        new_minutes = await self.streams.count_minutes_between(streamer_id, last, to_ts)
        total_minutes = carry + new_minutes
        blocks, carry = divmod(total_minutes, jobs.auto_mint_minutes)
        minted = blocks * jobs.auto_mint_rubis

        state.last_bucket_ts = to_ts
        state.carry_minutes = carry
        state.updated_at = now
        if minted <= 0:
            return AutoMintResult(streamer_id=streamer_id, minted=0, carry_minutes=carry)

        rule = {"minutes": jobs.auto_mint_minutes, "rubis": jobs.auto_mint_rubis}
        tx = await self.ledger.add_transaction(
            kind=TxKind.MINT.value,
            purpose=ORIGIN_CHEST_AUTO,
            amount=minted,
            streamer_id=streamer_id,
            meta={"rule": rule, "to_ts": to_ts.isoformat()},
        )
        await self.repository.add_chest_lot(
            streamer_id=streamer_id,
            origin=ORIGIN_CHEST_AUTO,
            weight_bp=self.cap_bp,
            amount=minted,
            meta={"rule": rule, "to_ts": to_ts.isoformat(), "tx_id": tx.id},
        )
        await self.ledger.add_entries(tx.id, [EntryLine(ENTITY_CHEST, None, minted)])
        self.repository.touch_chest(chest, now)

        logger.info(
            "Auto-minted %s rubis into chest of %s (%s minutes, carry %s)",
            minted,
            streamer_id,
            total_minutes,
            carry,
        )
        return AutoMintResult(streamer_id=streamer_id, minted=minted, carry_minutes=carry, tx_id=tx.id)

    async def get_state(self, streamer_id: str) -> ChestState:
        await self.require_streamer(streamer_id)
        opening = await self.repository.get_open_opening(streamer_id)
        participants = await self.repository.count_participants(opening.id) if opening else 0
        return ChestState(
            streamer_id=streamer_id,
            balance=await self.repository.chest_balance(streamer_id),
            breakdown=await self.repository.chest_breakdown(streamer_id),
            cap_out_weight_bp=self.cap_bp,
            opening=self._to_opening(opening) if opening else None,
            participants_count=participants,
        )

    @staticmethod
    def _to_opening(model: OpeningModel) -> ChestOpening:
        return ChestOpening(
            id=model.id,
            streamer_id=model.streamer_id,
            created_by_user_id=model.created_by_user_id,
            status=model.status,
            opens_at=as_utc(model.opens_at),
            closes_at=as_utc(model.closes_at),
            min_watch_minutes=model.min_watch_minutes,
            closed_at=as_utc(model.closed_at),
        )

    @staticmethod
    def _to_participant(model: ParticipantModel) -> ChestParticipant:
        return ChestParticipant(opening_id=model.opening_id, user_id=model.user_id, joined_at=as_utc(model.joined_at))

    @staticmethod
    def _to_payout(model: PayoutModel) -> ChestPayout:
        return ChestPayout(
            user_id=model.user_id,
            amount=model.amount,
            breakdown=json.loads(model.breakdown or "{}"),
            tx_id=model.tx_id,
        )
