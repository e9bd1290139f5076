"""SQLAlchemy implementation of the stream directory."""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rubis.db.models import LiveSession, Streamer, StreamerMod, StreamViewerMinute, ViewerSession
from rubis.domain.streams.models import StreamerInfo


class SqlStreamDirectory:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_streamer(self, streamer_id: str) -> StreamerInfo | None:
        model = await self.session.get(Streamer, streamer_id)
        return self._to_domain(model)

    async def get_streamer_by_slug(self, slug: str) -> StreamerInfo | None:
        slug = (slug or "").strip()
        if not slug:
            return None
        stmt = select(Streamer).where(func.lower(Streamer.slug) == slug.lower()).limit(1)
        result = await self.session.execute(stmt)
        return self._to_domain(result.scalars().first())

    async def list_live_streamer_ids(self) -> list[str]:
        stmt = select(Streamer.id).where(Streamer.is_live.is_(True)).order_by(Streamer.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def active_moderator_ids(self, streamer_id: str) -> list[str]:
        stmt = (
            select(StreamerMod.user_id)
            .where(StreamerMod.streamer_id == streamer_id, StreamerMod.removed_at.is_(None))
            .order_by(StreamerMod.user_id)
        )
        result = await self.session.execute(stmt)
        return list(dict.fromkeys(result.scalars().all()))

    async def current_live_session_id(self, streamer_id: str) -> int | None:
        stmt = (
            select(LiveSession.id)
            .where(LiveSession.streamer_id == streamer_id, LiveSession.ended_at.is_(None))
            .order_by(desc(LiveSession.started_at), desc(LiveSession.id))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def has_recent_heartbeat(
        self,
        live_session_id: int,
        viewer_key: str,
        ttl_seconds: int,
        now: datetime,
    ) -> bool:
        stmt = (
            select(ViewerSession.id)
            .where(
                ViewerSession.live_session_id == live_session_id,
                ViewerSession.viewer_key == viewer_key,
                ViewerSession.ended_at.is_(None),
                ViewerSession.last_heartbeat_at >= now - timedelta(seconds=ttl_seconds),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first() is not None

    async def watched_minutes(self, live_session_id: int, viewer_key: str) -> int:
        stmt = select(func.count()).where(
            StreamViewerMinute.live_session_id == live_session_id,
            StreamViewerMinute.viewer_key == viewer_key,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def count_minutes_between(
        self,
        streamer_id: str,
        after: datetime | None,
        until: datetime,
    ) -> int:
        stmt = select(func.count()).where(
            StreamViewerMinute.streamer_id == streamer_id,
            StreamViewerMinute.bucket_ts <= until,
        )
        if after is not None:
            stmt = stmt.where(StreamViewerMinute.bucket_ts > after)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    def _to_domain(model: Streamer | None) -> StreamerInfo | None:
        if model is None:
            return None
        return StreamerInfo(
            id=model.id,
            slug=model.slug,
            owner_user_id=model.user_id,
            is_live=bool(model.is_live),
            mods_percent_bp=int(model.mods_percent_bp or 0),
        )
