"""Domain models for streamer chests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

OPENING_OPEN = "open"
OPENING_CLOSED = "closed"

ORIGIN_CHEST_DEPOSIT = "chest_deposit"
ORIGIN_CHEST_AUTO = "chest_auto"


@dataclass(slots=True)
class ChestOpening:
    id: int
    streamer_id: str
    created_by_user_id: str
    status: str
    opens_at: datetime
    closes_at: datetime
    min_watch_minutes: int
    closed_at: Optional[datetime] = None


@dataclass(slots=True)
class ChestParticipant:
    opening_id: int
    user_id: str
    joined_at: datetime


@dataclass(slots=True)
class ChestPayout:
    user_id: str
    amount: int
    breakdown: dict[str, int]
    tx_id: Optional[int]


@dataclass(slots=True)
class CloseResult:
    opening_id: int
    already_closed: bool
    payouts: list[ChestPayout] = field(default_factory=list)


@dataclass(slots=True)
class DepositResult:
    tx_id: int
    amount: int
    chest_balance: int
    chest_lot_ids: list[int]


@dataclass(slots=True)
class ChestState:
    streamer_id: str
    balance: int
    breakdown: dict[str, int]
    cap_out_weight_bp: int
    opening: Optional[ChestOpening]
    participants_count: int


@dataclass(slots=True)
class AutoMintResult:
    streamer_id: str
    minted: int
    carry_minutes: int
    tx_id: Optional[int] = None
