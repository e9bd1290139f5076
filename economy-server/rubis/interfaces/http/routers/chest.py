"""Streamer chest endpoints, addressed by streamer slug."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from rubis.core.security import CurrentUser, get_current_user
from rubis.domain.chest.service import ChestService
from rubis.domain.streams.models import StreamerInfo
from rubis.interfaces.http.deps import get_chest_service
from rubis.interfaces.http.schemas import (
    ChestCloseResponse,
    ChestDepositRequest,
    ChestDepositResponse,
    ChestJoinResponse,
    ChestOpenRequest,
    ChestOpeningResponse,
    ChestStateResponse,
)

router = APIRouter()


def _require_manager(user: CurrentUser, streamer: StreamerInfo) -> None:
    """Deposit, open and close are for the streamer or an admin."""
    if user.is_admin or streamer.owner_user_id == user.id:
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the streamer can manage the chest")


@router.get("/{slug}/chest", response_model=ChestStateResponse, summary="Chest balance and current opening")
async def get_chest(
    slug: str,
    _: CurrentUser = Depends(get_current_user),
    service: ChestService = Depends(get_chest_service),
) -> ChestStateResponse:
    streamer = await service.find_streamer(slug)
    state = await service.get_state(streamer.id)
    return ChestStateResponse.model_validate(state)


@router.post("/{slug}/chest/deposit", response_model=ChestDepositResponse, summary="Move rubis into the chest")
async def deposit(
    slug: str,
    payload: ChestDepositRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChestService = Depends(get_chest_service),
) -> ChestDepositResponse:
    streamer = await service.find_streamer(slug)
    _require_manager(user, streamer)
    result = await service.deposit(
        streamer_id=streamer.id,
        from_user_id=user.id,
        amount=payload.amount,
        note=payload.note,
    )
    return ChestDepositResponse.model_validate(result)


@router.post(
    "/{slug}/chest/open",
    response_model=ChestOpeningResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open the chest for viewers to join",
)
async def open_chest(
    slug: str,
    payload: ChestOpenRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChestService = Depends(get_chest_service),
) -> ChestOpeningResponse:
    streamer = await service.find_streamer(slug)
    _require_manager(user, streamer)
    opening = await service.open(
        streamer_id=streamer.id,
        by_user_id=user.id,
        duration_seconds=payload.duration_seconds,
        min_watch_minutes=payload.min_watch_minutes,
    )
    return ChestOpeningResponse.model_validate(opening)


@router.post("/{slug}/chest/join", response_model=ChestJoinResponse, summary="Join the open chest")
async def join_chest(
    slug: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChestService = Depends(get_chest_service),
) -> ChestJoinResponse:
    streamer = await service.find_streamer(slug)
    participant = await service.join(
        streamer_id=streamer.id,
        user_id=user.id,
        streamer_owner_id=streamer.owner_user_id,
    )
    return ChestJoinResponse.model_validate(participant)


@router.post("/{slug}/chest/close", response_model=ChestCloseResponse, summary="Close the chest and pay out")
async def close_chest(
    slug: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChestService = Depends(get_chest_service),
) -> ChestCloseResponse:
    streamer = await service.find_streamer(slug)
    _require_manager(user, streamer)
    result = await service.close_current(streamer.id, closed_by=user.id)
    return ChestCloseResponse.model_validate(result)
