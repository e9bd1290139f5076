from __future__ import annotations

import json
import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from rubis.core.clock import as_utc
from rubis.db.models import ChestOpening as OpeningModel
from rubis.db.models import ChestPayout as PayoutModel
from rubis.db.models import RubisTx, StreamerChestLot
from rubis.domain.chest.exceptions import (
    AlreadyOpen,
    NeedWatchtime,
    NoOpening,
    NotWatching,
    OpeningClosed,
    OwnerForbidden,
    StreamOffline,
)
from rubis.domain.chest.service import ChestService
from rubis.domain.ledger.exceptions import InsufficientBalance
from rubis.domain.ledger.models import RubisOrigin
from rubis.domain.ledger.service import LedgerService
from rubis.infrastructure.database.repositories import SqlChestRepository, SqlLedgerRepository
from rubis.infrastructure.database.session import transaction
from rubis.jobs.chest_jobs import close_expired_openings, run_auto_mint

from .conftest import NOW


@pytest.fixture
def chest(factory, settings):
    """Run ``fn(service)`` in its own transaction with a fixed clock and seeded rng."""

    async def _run(fn, now=NOW, rng=None):
        async with transaction(factory) as session:
            service = ChestService.with_session(session, settings, rng=rng or random.Random(7))
            service.clock = lambda: now
            return await fn(service)

    return _run


@pytest.fixture
def ledger(factory, settings):
    async def _run(fn):
        async with transaction(factory) as session:
            return await fn(LedgerService.with_session(session, settings))

    return _run


@pytest.fixture
async def stage(seed, ledger):
    """A live streamer with two eligible viewers."""
    owner = await seed.user("streamer")
    streamer = await seed.streamer("alice", owner)
    live = await seed.go_live(streamer)
    viewers = []
    for name in ("viewer-a", "viewer-b"):
        viewer = await seed.user(name)
        await seed.heartbeat(live, viewer)
        await seed.watch(streamer, live, viewer, 6)
        viewers.append(viewer)
    await ledger(lambda s: s.mint(user_id=owner, amount=100, origin=RubisOrigin.PAID_TOPUP))
    await ledger(lambda s: s.mint(user_id=owner, amount=50, origin=RubisOrigin.FARM_WATCH))
    return {"owner": owner, "streamer": streamer, "live": live, "viewers": viewers}


async def chest_lots(factory, streamer_id):
    async with transaction(factory) as session:
        result = await session.execute(
            select(StreamerChestLot).where(StreamerChestLot.streamer_id == streamer_id).order_by(StreamerChestLot.id)
        )
        return list(result.scalars().all())


async def count(factory, model) -> int:
    async with transaction(factory) as session:
        return int((await session.execute(select(func.count()).select_from(model))).scalar_one())


async def test_deposit_caps_chest_weights(chest, stage, seed, factory):
    s = stage

    result = await chest(lambda c: c.deposit(streamer_id=s["streamer"], from_user_id=s["owner"], amount=120))

    assert result.chest_balance == 120
    assert await seed.balance(s["owner"]) == 30
    lots = await chest_lots(factory, s["streamer"])
    assert [(lot.weight_bp, lot.amount_remaining) for lot in lots] == [(2000, 50), (2000, 70)]
    assert [json.loads(lot.meta)["from_weight_bp"] for lot in lots] == [3500, 10000]
    async with transaction(factory) as session:
        entries = await SqlLedgerRepository(session).list_entries(result.tx_id)
    assert sorted((entry.entity, entry.delta) for entry in entries) == [("chest", 120), ("user", -120)]


async def test_deposit_needs_balance(chest, stage):
    s = stage

    with pytest.raises(InsufficientBalance):
        await chest(lambda c: c.deposit(streamer_id=s["streamer"], from_user_id=s["owner"], amount=151))


async def test_open_twice_is_rejected(chest, stage):
    s = stage
    opening = await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))

    assert opening.closes_at - opening.opens_at == timedelta(seconds=30)
    with pytest.raises(AlreadyOpen):
        await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))


async def test_open_clamps_duration_and_min_watch(chest, stage):
    s = stage

    opening = await chest(
        lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"], duration_seconds=1, min_watch_minutes=-3)
    )

    assert opening.closes_at - opening.opens_at == timedelta(seconds=5)
    assert opening.min_watch_minutes == 1


async def test_join_rules(chest, stage, seed):
    s = stage
    viewer = s["viewers"][0]

    with pytest.raises(NoOpening):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer))

    await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))

    with pytest.raises(OwnerForbidden):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=s["owner"]))

    with pytest.raises(OpeningClosed):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer), now=NOW + timedelta(seconds=30))

    stranger = await seed.user("stranger")
    with pytest.raises(NotWatching):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=stranger))

    stale = await seed.user("stale")
    await seed.heartbeat(s["live"], stale, at=NOW - timedelta(seconds=46))
    with pytest.raises(NotWatching):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=stale))

    newcomer = await seed.user("newcomer")
    await seed.heartbeat(s["live"], newcomer)
    await seed.watch(s["streamer"], s["live"], newcomer, 2)
    with pytest.raises(NeedWatchtime) as excinfo:
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=newcomer))
    assert (excinfo.value.watched_minutes, excinfo.value.min_watch_minutes) == (2, 5)

    first = await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer))
    again = await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer), now=NOW + timedelta(seconds=5))
    assert again.joined_at == first.joined_at

    await seed.end_live(s["live"])
    with pytest.raises(StreamOffline):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=s["viewers"][1]))


async def test_concurrent_join_keeps_the_first_row(chest, stage, factory):
    s = stage
    viewer = s["viewers"][0]
    opening = await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))
    first = await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer))

    # A second insert that missed the existing row must not fail the unit.
    async with transaction(factory) as session:
        repository = SqlChestRepository(session)
        late = await repository.add_participant(opening.id, viewer, NOW + timedelta(seconds=3))
        participants = await repository.count_participants(opening.id)

    assert participants == 1
    assert late.user_id == viewer
    assert as_utc(late.joined_at) == first.joined_at


async def test_close_pays_everyone_and_is_idempotent(chest, stage, seed, factory):
    s = stage
    a, b = s["viewers"]
    await chest(lambda c: c.deposit(streamer_id=s["streamer"], from_user_id=s["owner"], amount=121))
    opening = await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))
    for viewer in (a, b):
        await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=viewer))

    result = await chest(lambda c: c.close(opening.id, s["owner"]))

    assert not result.already_closed
    assert sorted(p.amount for p in result.payouts) == [60, 61]
    assert {p.user_id for p in result.payouts} == {a, b}
    for payout in result.payouts:
        assert sum(payout.breakdown.values()) == payout.amount
        assert set(payout.breakdown) == {"2000"}
        assert await seed.balance(payout.user_id) == payout.amount
        [lot] = await seed.lots(payout.user_id)
        assert (lot.origin, lot.weight_bp) == ("chest_streamer", 2000)
    assert await chest_lots(factory, s["streamer"]) == []

    tx_before = await count(factory, RubisTx)
    payouts_before = await count(factory, PayoutModel)
    repeat = await chest(lambda c: c.close(opening.id, "auto"), rng=random.Random(99))

    assert repeat.already_closed
    assert repeat.payouts == result.payouts
    assert await count(factory, RubisTx) == tx_before
    assert await count(factory, PayoutModel) == payouts_before


async def test_close_with_no_participants_keeps_the_pool(chest, stage):
    s = stage
    await chest(lambda c: c.deposit(streamer_id=s["streamer"], from_user_id=s["owner"], amount=40))
    await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))

    result = await chest(lambda c: c.close_current(s["streamer"], s["owner"]))

    assert result.payouts == []
    state = await chest(lambda c: c.get_state(s["streamer"]))
    assert state.balance == 40
    assert state.breakdown == {"2000": 40}
    assert state.opening is None
    with pytest.raises(NoOpening):
        await chest(lambda c: c.close_current(s["streamer"], s["owner"]))


async def test_state_reports_open_opening(chest, stage):
    s = stage
    await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]))
    await chest(lambda c: c.join(streamer_id=s["streamer"], user_id=s["viewers"][0]))

    state = await chest(lambda c: c.get_state(s["streamer"]))

    assert state.cap_out_weight_bp == 2000
    assert state.opening is not None
    assert state.participants_count == 1


async def test_auto_close_job_closes_expired_openings(chest, stage, factory, settings):
    s = stage
    await chest(lambda c: c.deposit(streamer_id=s["streamer"], from_user_id=s["owner"], amount=10))
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    await chest(lambda c: c.open(streamer_id=s["streamer"], by_user_id=s["owner"]), now=long_ago)

    results = await close_expired_openings(factory, settings, rng=random.Random(3))
    again = await close_expired_openings(factory, settings)

    assert [r.already_closed for r in results] == [False]
    assert again == []
    async with transaction(factory) as session:
        opening = (await session.execute(select(OpeningModel))).scalars().one()
    assert opening.status == "closed"
    assert json.loads(opening.meta)["closed_by"] == "auto"


async def test_auto_mint_carries_partial_blocks(chest, stage, seed, factory):
    s = stage
    start = datetime(2026, 10, 18, 12, 0, 30, tzinfo=timezone.utc)
    other = await seed.go_live(s["streamer"], started_at=start)

    first = await chest(lambda c: c.auto_mint_tick(s["streamer"], start))
    assert (first.minted, first.carry_minutes) == (0, 0)

    await seed.watch(s["streamer"], other, "late-viewer", 7, start=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))
    second = await chest(lambda c: c.auto_mint_tick(s["streamer"], start + timedelta(minutes=7, seconds=40)))
    assert (second.minted, second.carry_minutes) == (3, 2)

    await seed.watch(s["streamer"], other, "late-viewer", 3, start=datetime(2026, 10, 18, 12, 8, tzinfo=timezone.utc))
    third = await chest(lambda c: c.auto_mint_tick(s["streamer"], start + timedelta(minutes=10, seconds=35)))
    assert (third.minted, third.carry_minutes) == (3, 0)

    repeat = await chest(lambda c: c.auto_mint_tick(s["streamer"], start + timedelta(minutes=10, seconds=50)))
    assert repeat.minted == 0

    lots = await chest_lots(factory, s["streamer"])
    assert [(lot.origin, lot.weight_bp, lot.amount_remaining) for lot in lots] == [
        ("chest_auto", 2000, 3),
        ("chest_auto", 2000, 3),
    ]


async def test_auto_mint_job_visits_live_streamers(stage, factory, settings):
    results = await run_auto_mint(factory, settings, now=NOW)

    assert [r.streamer_id for r in results] == [stage["streamer"]]
