"""Chest pool distribution.

The pool is shared as evenly as integers allow; the indivisible leftover goes
one unit each to a uniformly random subset of participants.
"""

from __future__ import annotations

import random
import secrets
from collections.abc import MutableSequence, Sequence
from typing import Protocol

from rubis.domain.ledger.allocation import WeightedLot

from .exceptions import ChestEmptyRace


class Shuffler(Protocol):
    def shuffle(self, x: MutableSequence[int]) -> None:
        ...


def default_rng() -> random.Random:
    return secrets.SystemRandom()


def split_pool(total: int, participants: int, rng: Shuffler) -> list[int]:
    """Per-participant amounts (by position) that sum to exactly ``total``."""
    if participants <= 0 or total <= 0:
        return [0] * max(participants, 0)
    base, remainder = divmod(total, participants)
    indices = list(range(participants))
    rng.shuffle(indices)
    bonus = set(indices[:remainder])
    return [base + (1 if i in bonus else 0) for i in range(participants)]


class LotCursor:
    """Walks lots in the given order, carving amounts out of them.

    Mutates ``amount_remaining`` on the lots it is handed.
    """

    def __init__(self, lots: Sequence[WeightedLot]) -> None:
        self._lots = lots
        self._pointer = 0

    def take(self, need: int) -> dict[int, int]:
        breakdown: dict[int, int] = {}
        while need > 0:
            if self._pointer >= len(self._lots):
                raise ChestEmptyRace(f"chest lots exhausted with {need} rubis still owed")
            lot = self._lots[self._pointer]
            take = min(need, lot.amount_remaining)
            if take > 0:
                breakdown[lot.weight_bp] = breakdown.get(lot.weight_bp, 0) + take
                lot.amount_remaining -= take
                need -= take
            if lot.amount_remaining <= 0:
                self._pointer += 1
        return breakdown
