"""Pydantic request/response models for the HTTP layer."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AllocationResponse(BaseModel):
    lot_id: int
    origin: str
    weight_bp: int
    amount: int

    model_config = ConfigDict(from_attributes=True)


class LotResponse(BaseModel):
    id: int
    origin: str
    weight_bp: int
    amount_total: int
    amount_remaining: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletResponse(BaseModel):
    user_id: str
    balance: int
    value_cents: int
    lots: list[LotResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TransactionResponse(BaseModel):
    id: int
    kind: str
    purpose: str
    status: str
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    streamer_id: Optional[str] = None
    amount: int
    support_value: int
    streamer_amount: int
    platform_amount: int
    burn_amount: int
    created_at: datetime
    meta: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse] = Field(default_factory=list)


class SinkRequest(BaseModel):
    amount: int = Field(..., description="Rubis to burn")
    purpose: str = Field(..., min_length=1, max_length=50)
    meta: Optional[dict[str, Any]] = None


class SinkResponse(BaseModel):
    tx_id: int
    amount: int
    burn_amount: int
    allocations: list[AllocationResponse]

    model_config = ConfigDict(from_attributes=True)


class SupportRequest(BaseModel):
    streamer_slug: str = Field(..., min_length=1)
    amount: int
    purpose: str = Field(default="support", min_length=1, max_length=50)
    meta: Optional[dict[str, Any]] = None


class ModPayoutResponse(BaseModel):
    user_id: str
    amount: int

    model_config = ConfigDict(from_attributes=True)


class SupportResponse(BaseModel):
    tx_id: int
    amount: int
    support_value: int
    platform_amount: int
    mods_total: int
    streamer_amount: int
    burn_amount: int
    allocations: list[AllocationResponse]
    mods_paid: list[ModPayoutResponse]
    mods_redirected: bool

    model_config = ConfigDict(from_attributes=True)


class CashoutRequestBody(BaseModel):
    streamer_slug: str = Field(..., min_length=1)
    value_cents: int
    note: Optional[str] = None


class CashoutResponse(BaseModel):
    tx_id: int
    request_id: int
    value_cents: int
    rubis_debited: int
    allocations: list[AllocationResponse]

    model_config = ConfigDict(from_attributes=True)


class MintRequest(BaseModel):
    user_id: str
    amount: int
    origin: str = Field(..., min_length=1, max_length=40)
    meta: Optional[dict[str, Any]] = None


class MintResponse(BaseModel):
    tx_id: int
    user_id: str
    amount: int
    origin: str
    weight_bp: int
    lot_id: int

    model_config = ConfigDict(from_attributes=True)


class ConsistencyResponse(BaseModel):
    user_id: str
    balance: int
    lots_remaining: int
    consistent: bool


# --- Chest ---


class ChestOpeningResponse(BaseModel):
    id: int
    status: str
    opens_at: datetime
    closes_at: datetime
    min_watch_minutes: int
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChestStateResponse(BaseModel):
    streamer_id: str
    balance: int
    breakdown: dict[str, int]
    cap_out_weight_bp: int
    opening: Optional[ChestOpeningResponse] = None
    participants_count: int

    model_config = ConfigDict(from_attributes=True)


class ChestDepositRequest(BaseModel):
    amount: int
    note: Optional[str] = Field(default=None, max_length=200)


class ChestDepositResponse(BaseModel):
    tx_id: int
    amount: int
    chest_balance: int
    chest_lot_ids: list[int]

    model_config = ConfigDict(from_attributes=True)


class ChestOpenRequest(BaseModel):
    duration_seconds: Optional[int] = Field(default=None, ge=1)
    min_watch_minutes: Optional[int] = Field(default=None, ge=1)


class ChestJoinResponse(BaseModel):
    opening_id: int
    user_id: str
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChestPayoutResponse(BaseModel):
    user_id: str
    amount: int
    breakdown: dict[str, int]
    tx_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ChestCloseResponse(BaseModel):
    opening_id: int
    already_closed: bool
    payouts: list[ChestPayoutResponse]

    model_config = ConfigDict(from_attributes=True)
