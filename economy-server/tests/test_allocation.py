from dataclasses import dataclass

import pytest

from rubis.domain.ledger.allocation import (
    allocate,
    allocate_for_value,
    carve_value,
    lot_value,
    order_lots,
    split_support,
    support_value,
)
from rubis.domain.ledger.exceptions import InsufficientLots, InsufficientValue
from rubis.domain.ledger.models import Allocation, Direction


@dataclass
class FakeLot:
    id: int
    weight_bp: int
    amount_remaining: int
    origin: str = "test"


def test_ascending_consumes_weakest_lots_first():
    lots = [FakeLot(1, 10000, 200), FakeLot(2, 2000, 300), FakeLot(3, 3500, 100)]

    allocations = allocate(lots, 350, Direction.ASCENDING)

    assert [(a.lot_id, a.amount) for a in allocations] == [(2, 300), (3, 50)]


def test_descending_consumes_strongest_lots_first():
    lots = [FakeLot(1, 2000, 300), FakeLot(2, 10000, 200)]

    allocations = allocate(lots, 250, Direction.DESCENDING)

    assert [(a.lot_id, a.weight_bp, a.amount) for a in allocations] == [(2, 10000, 200), (1, 2000, 50)]


def test_equal_weights_break_ties_by_lot_id():
    lots = [FakeLot(9, 3000, 10), FakeLot(4, 3000, 10)]

    assert [lot.id for lot in order_lots(lots, Direction.ASCENDING)] == [4, 9]
    assert [lot.id for lot in order_lots(lots, Direction.DESCENDING)] == [4, 9]


def test_allocate_raises_when_lots_are_short():
    with pytest.raises(InsufficientLots):
        allocate([FakeLot(1, 10000, 10)], 11, Direction.ASCENDING)


def test_support_value_floors_per_lot():
    allocations = [Allocation(1, "a", 3500, 1), Allocation(2, "b", 3500, 1)]

    # 0.35 + 0.35 would round to 0 once, but each lot floors on its own.
    assert support_value(allocations) == 0
    assert lot_value(100, 3500) == 35


def test_split_support_gives_mod_remainder_to_last_moderator():
    split = split_support(1000, mods_percent_bp=1000, moderator_ids=["mod-c", "mod-a", "mod-b"], platform_fee_bp=0)

    assert split.mods_total == 100
    assert split.streamer_amount == 900
    assert split.mod_shares == [("mod-a", 33), ("mod-b", 33), ("mod-c", 34)]
    assert not split.mods_redirected


def test_split_support_redirects_mods_share_without_moderators():
    split = split_support(1000, mods_percent_bp=1000, moderator_ids=[], platform_fee_bp=1000)

    assert split.platform_amount == 100
    assert split.winners == 900
    assert split.mods_total == 90
    assert split.streamer_amount == 810
    assert split.mods_redirected
    assert split.streamer_credit == 900


def test_cashout_allocation_uses_fewest_rubis():
    lots = [FakeLot(1, 3500, 100), FakeLot(2, 10000, 100)]

    allocations = allocate_for_value(lots, 120)

    assert [(a.lot_id, a.amount) for a in allocations] == [(2, 100), (1, 58)]
    assert support_value(allocations) >= 120
    # One rubis less from the weak lot would miss the target.
    assert lot_value(100, 10000) + lot_value(57, 3500) < 120


def test_cashout_allocation_skips_zero_weight_lots():
    lots = [FakeLot(1, 0, 1000), FakeLot(2, 10000, 50)]

    with pytest.raises(InsufficientValue):
        allocate_for_value(lots, 51)

    assert [a.lot_id for a in allocate_for_value(lots, 50)] == [2]


def test_carve_value_follows_funding_weights_in_order():
    allocations = [Allocation(1, "paid_topup", 10000, 50), Allocation(2, "farm_watch", 3500, 100)]

    carved = carve_value(allocations, [("streamer", 60), ("mod", 20)])

    assert carved == {"streamer": {10000: 50, 3500: 10}, "mod": {3500: 20}}


def test_carve_value_rejects_payouts_above_value():
    with pytest.raises(ValueError):
        carve_value([Allocation(1, "x", 10000, 5)], [("streamer", 6)])
