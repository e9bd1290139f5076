from fastapi import APIRouter

from . import admin, chest, wallet


def create_api_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix)
    router.include_router(wallet.router, tags=["wallet"])
    router.include_router(chest.router, prefix="/streamers", tags=["chest"])
    router.include_router(admin.router, prefix="/admin", tags=["admin"])
    return router


__all__ = [
    "create_api_router",
]
