from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from rubis.core.config import Settings
from rubis.db.models import (
    LiveSession,
    RubisLot,
    Streamer,
    StreamerMod,
    StreamViewerMinute,
    User,
    ViewerSession,
)
from rubis.domain.streams.models import viewer_key
from rubis.infrastructure.database.session import init_db, make_session_factory, transaction

NOW = datetime(2026, 10, 18, 12, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(environment="test")


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rubis.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def factory(engine):
    return make_session_factory(engine)


class Seeder:
    """Writes the rows other subsystems own (users, streamers, presence)."""

    def __init__(self, factory) -> None:
        self.factory = factory

    async def user(self, username: str, role: str = "viewer") -> str:
        async with transaction(self.factory) as session:
            user = User(username=username, role=role, rubis=0)
            session.add(user)
            await session.flush()
            return user.id

    async def streamer(self, slug: str, owner_id: str, *, is_live: bool = True, mods_percent_bp: int = 0) -> str:
        async with transaction(self.factory) as session:
            streamer = Streamer(slug=slug, user_id=owner_id, is_live=is_live, mods_percent_bp=mods_percent_bp)
            session.add(streamer)
            await session.flush()
            return streamer.id

    async def moderator(self, streamer_id: str, user_id: str, removed: bool = False) -> None:
        async with transaction(self.factory) as session:
            session.add(
                StreamerMod(streamer_id=streamer_id, user_id=user_id, removed_at=NOW if removed else None)
            )

    async def go_live(self, streamer_id: str, started_at: datetime = NOW - timedelta(hours=1)) -> int:
        async with transaction(self.factory) as session:
            live = LiveSession(streamer_id=streamer_id, started_at=started_at)
            session.add(live)
            await session.flush()
            return live.id

    async def end_live(self, live_session_id: int) -> None:
        async with transaction(self.factory) as session:
            live = await session.get(LiveSession, live_session_id)
            live.ended_at = NOW

    async def heartbeat(self, live_session_id: int, user_id: str, at: datetime = NOW) -> None:
        async with transaction(self.factory) as session:
            session.add(
                ViewerSession(live_session_id=live_session_id, viewer_key=viewer_key(user_id), last_heartbeat_at=at)
            )

    async def watch(
        self,
        streamer_id: str,
        live_session_id: int,
        user_id: str,
        minutes: int,
        start: datetime = NOW - timedelta(minutes=30),
    ) -> None:
        base = start.replace(second=0, microsecond=0)
        async with transaction(self.factory) as session:
            for offset in range(minutes):
                session.add(
                    StreamViewerMinute(
                        streamer_id=streamer_id,
                        live_session_id=live_session_id,
                        viewer_key=viewer_key(user_id),
                        bucket_ts=base + timedelta(minutes=offset),
                    )
                )

    async def balance(self, user_id: str) -> int:
        async with transaction(self.factory) as session:
            user = await session.get(User, user_id)
            return user.rubis

    async def lots(self, user_id: str) -> list[RubisLot]:
        async with transaction(self.factory) as session:
            result = await session.execute(
                select(RubisLot).where(RubisLot.user_id == user_id).order_by(RubisLot.id)
            )
            return list(result.scalars().all())


@pytest.fixture
def seed(factory) -> Seeder:
    return Seeder(factory)
