"""Admin-only rubis endpoints."""
from fastapi import APIRouter, Depends, status

from rubis.core.security import CurrentUser, get_current_admin
from rubis.domain.ledger.service import LedgerService
from rubis.interfaces.http.deps import get_ledger_service
from rubis.interfaces.http.schemas import ConsistencyResponse, MintRequest, MintResponse

router = APIRouter()


@router.post(
    "/rubis/mint",
    response_model=MintResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Mint rubis to a user",
)
async def mint_rubis(
    payload: MintRequest,
    admin: CurrentUser = Depends(get_current_admin),
    service: LedgerService = Depends(get_ledger_service),
) -> MintResponse:
    meta = {**(payload.meta or {}), "by_admin": admin.id}
    result = await service.mint(user_id=payload.user_id, amount=payload.amount, origin=payload.origin, meta=meta)
    return MintResponse.model_validate(result)


@router.get(
    "/rubis/users/{user_id}/consistency",
    response_model=ConsistencyResponse,
    summary="Compare a cached balance with its lots",
)
async def check_consistency(
    user_id: str,
    _: CurrentUser = Depends(get_current_admin),
    service: LedgerService = Depends(get_ledger_service),
) -> ConsistencyResponse:
    report = await service.check_consistency(user_id)
    return ConsistencyResponse(
        user_id=report.user_id,
        balance=report.balance,
        lots_remaining=report.lots_remaining,
        consistent=report.consistent,
    )
