"""Viewer and streamer wallet endpoints: balance, history, sink, support, cashout."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from rubis.core.security import CurrentUser, get_current_user
from rubis.domain.chest.exceptions import StreamerNotFound
from rubis.domain.ledger.service import LedgerService
from rubis.domain.streams.models import StreamerInfo
from rubis.interfaces.http.deps import get_ledger_service
from rubis.interfaces.http.schemas import (
    CashoutRequestBody,
    CashoutResponse,
    SinkRequest,
    SinkResponse,
    SupportRequest,
    SupportResponse,
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
)

router = APIRouter()


async def _resolve_streamer(service: LedgerService, slug: str) -> StreamerInfo:
    streamer = await service.streams.get_streamer_by_slug(slug)
    if streamer is None or streamer.owner_user_id is None:
        raise StreamerNotFound(slug)
    return streamer


@router.get("/wallet", response_model=WalletResponse, summary="Current rubis balance and lots")
async def get_wallet(
    user: CurrentUser = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> WalletResponse:
    snapshot = await service.get_wallet(user.id)
    return WalletResponse.model_validate(snapshot)


@router.get("/wallet/transactions", response_model=TransactionListResponse, summary="Rubis transaction history")
async def list_transactions(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> TransactionListResponse:
    records = await service.list_transactions(user.id, limit, offset)
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(record) for record in records]
    )


@router.post("/wallet/sink", response_model=SinkResponse, summary="Spend rubis on a platform purchase")
async def sink(
    payload: SinkRequest,
    user: CurrentUser = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> SinkResponse:
    result = await service.sink(user_id=user.id, amount=payload.amount, purpose=payload.purpose, meta=payload.meta)
    return SinkResponse.model_validate(result)


@router.post("/support", response_model=SupportResponse, summary="Support a streamer with rubis")
async def support(
    payload: SupportRequest,
    user: CurrentUser = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> SupportResponse:
    streamer = await _resolve_streamer(service, payload.streamer_slug)
    if streamer.owner_user_id == user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot support your own stream")
    result = await service.support(
        user_id=user.id,
        streamer_id=streamer.id,
        streamer_owner_id=streamer.owner_user_id,
        amount=payload.amount,
        purpose=payload.purpose,
        meta=payload.meta,
        mods_percent_bp=streamer.mods_percent_bp,
    )
    return SupportResponse.model_validate(result)


@router.post(
    "/cashout",
    response_model=CashoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a cashout of real value",
)
async def cashout(
    payload: CashoutRequestBody,
    user: CurrentUser = Depends(get_current_user),
    service: LedgerService = Depends(get_ledger_service),
) -> CashoutResponse:
    streamer = await _resolve_streamer(service, payload.streamer_slug)
    if streamer.owner_user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the streamer can cash out")
    result = await service.cashout(
        streamer_owner_id=user.id,
        streamer_id=streamer.id,
        target_value_cents=payload.value_cents,
        meta={"note": payload.note} if payload.note else None,
    )
    return CashoutResponse.model_validate(result)
