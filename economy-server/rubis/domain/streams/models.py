"""Read models supplied by the streamer, moderation and live subsystems."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class StreamerInfo:
    id: str
    slug: str
    owner_user_id: Optional[str]
    is_live: bool
    mods_percent_bp: int


def viewer_key(user_id: str) -> str:
    return f"u:{user_id}"
