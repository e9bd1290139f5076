"""Chest domain exports"""

from .exceptions import (
    AlreadyOpen,
    ChestEmptyRace,
    ChestError,
    NeedWatchtime,
    NoOpening,
    NotWatching,
    OpeningClosed,
    OwnerForbidden,
    StreamerNotFound,
    StreamOffline,
)
from .models import ChestOpening, ChestPayout, ChestState, CloseResult, DepositResult

__all__ = [
    "AlreadyOpen",
    "ChestEmptyRace",
    "ChestError",
    "ChestOpening",
    "ChestPayout",
    "ChestState",
    "CloseResult",
    "DepositResult",
    "NeedWatchtime",
    "NoOpening",
    "NotWatching",
    "OpeningClosed",
    "OwnerForbidden",
    "StreamerNotFound",
    "StreamOffline",
]
