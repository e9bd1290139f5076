"""Narrow read interface onto the streamer, moderation and live subsystems."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from .models import StreamerInfo


class StreamDirectory(Protocol):
    async def get_streamer(self, streamer_id: str) -> StreamerInfo | None:
        ...

    async def get_streamer_by_slug(self, slug: str) -> StreamerInfo | None:
        ...

    async def list_live_streamer_ids(self) -> Sequence[str]:
        ...

    async def active_moderator_ids(self, streamer_id: str) -> list[str]:
        ...

    async def current_live_session_id(self, streamer_id: str) -> int | None:
        ...

    async def has_recent_heartbeat(
        self,
        live_session_id: int,
        viewer_key: str,
        ttl_seconds: int,
        now: datetime,
    ) -> bool:
        ...

    async def watched_minutes(self, live_session_id: int, viewer_key: str) -> int:
        ...

    async def count_minutes_between(
        self,
        streamer_id: str,
        after: datetime | None,
        until: datetime,
    ) -> int:
        ...
