"""Allocation engine: picks and splits weighted lots.

Everything here is pure arithmetic over lot snapshots. Callers hand in the lots
they already locked; the engine never touches the database.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from typing import Protocol, TypeVar

from .exceptions import InsufficientLots, InsufficientValue
from .models import BP_SCALE, Allocation, Direction, SupportSplit


class WeightedLot(Protocol):
    id: int
    origin: str
    weight_bp: int
    amount_remaining: int


LotT = TypeVar("LotT", bound=WeightedLot)
KeyT = TypeVar("KeyT", bound=Hashable)


def lot_value(amount: int, weight_bp: int) -> int:
    """Real value in cents backing ``amount`` rubis of the given weight (floored)."""
    return (amount * weight_bp) // BP_SCALE


def order_lots(lots: Iterable[LotT], direction: Direction) -> list[LotT]:
    if direction is Direction.ASCENDING:
        return sorted(lots, key=lambda lot: (lot.weight_bp, lot.id))
    return sorted(lots, key=lambda lot: (-lot.weight_bp, lot.id))


def allocate(lots: Iterable[WeightedLot], amount: int, direction: Direction) -> list[Allocation]:
    """Consume exactly ``amount`` rubis from ``lots`` following ``direction``."""
    allocations: list[Allocation] = []
    left = amount
    for lot in order_lots(lots, direction):
        if left <= 0:
            break
        use = min(lot.amount_remaining, left)
        if use > 0:
            allocations.append(Allocation(lot.id, lot.origin, lot.weight_bp, use))
            left -= use
    if left > 0:
        raise InsufficientLots(f"lots short by {left} rubis")
    return allocations


def allocate_for_value(lots: Iterable[WeightedLot], target_cents: int) -> list[Allocation]:
    """Consume the fewest rubis, strongest lots first, whose value reaches ``target_cents``."""
    allocations: list[Allocation] = []
    left = target_cents
    for lot in order_lots(lots, Direction.DESCENDING):
        if left <= 0:
            break
        if lot.weight_bp <= 0:
            continue
        needed = -(-left * BP_SCALE // lot.weight_bp)
        use = min(lot.amount_remaining, needed)
        if use > 0:
            allocations.append(Allocation(lot.id, lot.origin, lot.weight_bp, use))
            left -= lot_value(use, lot.weight_bp)
    if left > 0:
        raise InsufficientValue(f"lots short by {left} cents of value")
    return allocations


def support_value(allocations: Iterable[Allocation]) -> int:
    # Floors per consumed lot, not once on the total.
    return sum(lot_value(a.amount, a.weight_bp) for a in allocations)


def split_support(
    value: int,
    *,
    mods_percent_bp: int,
    moderator_ids: Sequence[str],
    platform_fee_bp: int,
) -> SupportSplit:
    platform_amount = (value * platform_fee_bp) // BP_SCALE
    winners = value - platform_amount
    mods_total = (winners * mods_percent_bp) // BP_SCALE
    streamer_amount = winners - mods_total

    split = SupportSplit(
        platform_amount=platform_amount,
        winners=winners,
        mods_total=mods_total,
        streamer_amount=streamer_amount,
    )
    if mods_total <= 0:
        return split
    if not moderator_ids:
        split.mods_redirected = True
        return split

    ordered = sorted(moderator_ids)
    per = mods_total // len(ordered)
    left = mods_total
    for index, user_id in enumerate(ordered):
        give = left if index == len(ordered) - 1 else per
        left -= give
        if give > 0:
            split.mod_shares.append((user_id, give))
    return split


def carve_value(
    allocations: Sequence[Allocation],
    payees: Sequence[tuple[KeyT, int]],
) -> dict[KeyT, dict[int, int]]:
    """Hand each payee its amount out of the value each consumed lot carried.

    Returns ``{payee: {weight_bp: amount}}`` so credited lots can inherit the
    weight of the lot that funded them.
    """
    segments = [[a.weight_bp, lot_value(a.amount, a.weight_bp)] for a in allocations]
    pointer = 0
    carved: dict[KeyT, dict[int, int]] = {}
    for key, need in payees:
        parts = carved.setdefault(key, {})
        while need > 0:
            if pointer >= len(segments):
                raise ValueError("support value exhausted before every payee was served")
            weight_bp, available = segments[pointer]
            take = min(need, available)
            if take > 0:
                parts[weight_bp] = parts.get(weight_bp, 0) + take
                segments[pointer][1] -= take
                need -= take
            if segments[pointer][1] <= 0:
                pointer += 1
    return carved
