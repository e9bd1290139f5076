"""Maps domain error codes onto HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from rubis.domain.chest.exceptions import NeedWatchtime
from rubis.domain.ledger.exceptions import LedgerError

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "bad_amount": status.HTTP_400_BAD_REQUEST,
    "insufficient_value": status.HTTP_400_BAD_REQUEST,
    "user_not_found": status.HTTP_404_NOT_FOUND,
    "streamer_not_found": status.HTTP_404_NOT_FOUND,
    "no_opening": status.HTTP_404_NOT_FOUND,
    "owner_forbidden": status.HTTP_403_FORBIDDEN,
    "insufficient_balance": status.HTTP_409_CONFLICT,
    "already_open": status.HTTP_409_CONFLICT,
    "opening_closed": status.HTTP_409_CONFLICT,
    "stream_offline": status.HTTP_409_CONFLICT,
    "not_watching": status.HTTP_409_CONFLICT,
    "need_watchtime": status.HTTP_409_CONFLICT,
    # Ledger invariant violations: the unit was rolled back.
    "insufficient_lots": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "chest_empty_race": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: LedgerError) -> int:
    return STATUS_BY_CODE.get(exc.code, status.HTTP_409_CONFLICT)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = status_for(exc)
    body = {"error": exc.code, "detail": str(exc) or exc.code}
    if isinstance(exc, NeedWatchtime):
        body["watched_minutes"] = exc.watched_minutes
        body["min_watch_minutes"] = exc.min_watch_minutes
    if status_code >= 500:
        logger.error("%s %s failed with %s: %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(status_code=status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)
