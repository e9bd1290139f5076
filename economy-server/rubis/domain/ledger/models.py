"""Domain models for ledger operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

BP_SCALE = 10000

ENTITY_USER = "user"
ENTITY_PLATFORM_FEE = "platform_fee"
ENTITY_PLATFORM_BURN = "platform_burn"
ENTITY_CHEST = "chest"


class RubisOrigin(str, Enum):
    PAID_TOPUP = "paid_topup"
    FARM_WATCH = "farm_watch"
    WHEEL_DAILY = "wheel_daily"
    ACHIEVEMENT = "achievement"
    CHEST_AUTO = "chest_auto"
    CHEST_STREAMER = "chest_streamer"
    EVENT_PLATFORM = "event_platform"
    EARN_SUPPORT = "earn_support"
    LEGACY = "legacy"


class TxKind(str, Enum):
    MINT = "mint"
    SINK = "sink"
    SUPPORT = "support"
    CASHOUT = "cashout"
    TRANSFER = "transfer"


class Direction(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass(slots=True, frozen=True)
class Allocation:
    lot_id: int
    origin: str
    weight_bp: int
    amount: int


@dataclass(slots=True, frozen=True)
class EntryLine:
    entity: str
    user_id: Optional[str]
    delta: int


@dataclass(slots=True)
class SupportSplit:
    platform_amount: int
    winners: int
    mods_total: int
    streamer_amount: int
    mod_shares: list[tuple[str, int]] = field(default_factory=list)
    mods_redirected: bool = False

    @property
    def streamer_credit(self) -> int:
        if self.mods_redirected:
            return self.streamer_amount + self.mods_total
        return self.streamer_amount


@dataclass(slots=True)
class ModPayout:
    user_id: str
    amount: int


@dataclass(slots=True)
class MintResult:
    tx_id: int
    user_id: str
    amount: int
    origin: str
    weight_bp: int
    lot_id: int


@dataclass(slots=True)
class SinkResult:
    tx_id: int
    amount: int
    burn_amount: int
    allocations: list[Allocation]


@dataclass(slots=True)
class SupportResult:
    tx_id: int
    amount: int
    support_value: int
    platform_amount: int
    mods_total: int
    streamer_amount: int
    burn_amount: int
    allocations: list[Allocation]
    mods_paid: list[ModPayout]
    mods_redirected: bool


@dataclass(slots=True)
class CashoutResult:
    tx_id: int
    request_id: int
    value_cents: int
    rubis_debited: int
    allocations: list[Allocation]


@dataclass(slots=True)
class Lot:
    id: int
    origin: str
    weight_bp: int
    amount_total: int
    amount_remaining: int
    created_at: datetime
    meta: dict[str, Any]


@dataclass(slots=True)
class WalletSnapshot:
    user_id: str
    balance: int
    value_cents: int
    lots: list[Lot]


@dataclass(slots=True)
class TransactionRecord:
    id: int
    kind: str
    purpose: str
    status: str
    from_user_id: Optional[str]
    to_user_id: Optional[str]
    streamer_id: Optional[str]
    amount: int
    support_value: int
    streamer_amount: int
    platform_amount: int
    burn_amount: int
    created_at: datetime
    meta: dict[str, Any]


@dataclass(slots=True)
class ConsistencyReport:
    user_id: str
    balance: int
    lots_remaining: int

    @property
    def consistent(self) -> bool:
        return self.balance == self.lots_remaining
