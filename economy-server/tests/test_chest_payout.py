import random
from collections import Counter
from dataclasses import dataclass

import pytest

from rubis.domain.chest.exceptions import ChestEmptyRace
from rubis.domain.chest.payout import LotCursor, split_pool


@dataclass
class FakeLot:
    id: int
    weight_bp: int
    amount_remaining: int
    origin: str = "chest_deposit"


@pytest.mark.parametrize("participants", [1, 2, 3, 7, 10])
def test_split_pool_sums_to_total_and_differs_by_at_most_one(participants):
    rng = random.Random(1234)
    for total in range(0, 60):
        shares = split_pool(total, participants, rng)

        assert len(shares) == participants
        assert sum(shares) == total
        assert max(shares) - min(shares) <= 1
        assert shares.count(total // participants + 1) == total % participants


def test_split_pool_spreads_the_remainder_over_everyone():
    rng = random.Random(42)
    winners = Counter()
    for _ in range(300):
        shares = split_pool(1, 3, rng)
        winners[shares.index(1)] += 1

    assert set(winners) == {0, 1, 2}
    assert min(winners.values()) >= 50


def test_split_pool_without_participants():
    assert split_pool(10, 0, random.Random(0)) == []


def test_lot_cursor_walks_lots_in_order():
    lots = [FakeLot(1, 2000, 5), FakeLot(2, 1500, 10)]
    cursor = LotCursor(lots)

    assert cursor.take(7) == {2000: 5, 1500: 2}
    assert cursor.take(8) == {1500: 8}
    assert [lot.amount_remaining for lot in lots] == [0, 0]


def test_lot_cursor_raises_when_lots_run_dry():
    cursor = LotCursor([FakeLot(1, 2000, 3)])

    with pytest.raises(ChestEmptyRace):
        cursor.take(4)
