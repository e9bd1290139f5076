"""Periodic chest jobs: auto-close of expired openings and watch-time auto-mint."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rubis.core.clock import utcnow
from rubis.core.config import Settings, get_settings
from rubis.domain.chest.models import AutoMintResult, CloseResult
from rubis.domain.chest.payout import Shuffler
from rubis.domain.chest.service import ChestService
from rubis.infrastructure.database.repositories.stream_repository import SqlStreamDirectory
from rubis.infrastructure.database.session import get_session_factory, transaction

logger = logging.getLogger(__name__)

CLOSED_BY_AUTO = "auto"


async def close_expired_openings(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[Settings] = None,
    rng: Optional[Shuffler] = None,
) -> list[CloseResult]:
    """Close every opening whose window has passed, one transaction each.

    A failing opening is logged and left open for the next run.
    """
    settings = settings or get_settings()
    factory = factory or get_session_factory()

    async with transaction(factory) as session:
        service = ChestService.with_session(session, settings=settings, rng=rng)
        opening_ids = await service.list_expired_openings(settings.jobs.auto_close_batch)

    results: list[CloseResult] = []
    for opening_id in opening_ids:
        try:
            async with transaction(factory) as session:
                service = ChestService.with_session(session, settings=settings, rng=rng)
                result = await service.close(opening_id, CLOSED_BY_AUTO)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Auto-close of chest opening %s failed", opening_id)
            continue
        if not result.already_closed:
            logger.info("Auto-closed chest opening %s (%s payouts)", opening_id, len(result.payouts))
        results.append(result)
    return results


async def run_auto_mint(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[AutoMintResult]:
    """Run one auto-mint tick for every live streamer, one transaction each."""
    settings = settings or get_settings()
    factory = factory or get_session_factory()
    now = now or utcnow()

    async with transaction(factory) as session:
        streamer_ids = await SqlStreamDirectory(session).list_live_streamer_ids()

    results: list[AutoMintResult] = []
    for streamer_id in streamer_ids:
        try:
            async with transaction(factory) as session:
                service = ChestService.with_session(session, settings=settings)
                results.append(await service.auto_mint_tick(streamer_id, now))
        except Exception:  # pylint: disable=broad-except
            logger.exception("Chest auto-mint failed for streamer %s", streamer_id)
    return results


class ChestJobRunner:
    """Owns the periodic asyncio tasks started by the application lifespan."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.factory = factory
        self.tasks: Dict[str, asyncio.Task] = {}

    def start(self) -> None:
        if self.tasks:
            return
        jobs = self.settings.jobs
        self.tasks["auto_close"] = asyncio.create_task(
            self._loop("auto_close", jobs.auto_close_interval, self._close_once, run_first=False)
        )
        self.tasks["auto_mint"] = asyncio.create_task(
            self._loop("auto_mint", jobs.auto_mint_interval, self._mint_once, run_first=True)
        )
        logger.info("Chest jobs started")

    async def stop(self) -> None:
        tasks = list(self.tasks.values())
        self.tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Chest jobs stopped")

    async def _close_once(self) -> None:
        await close_expired_openings(self.factory, self.settings)

    async def _mint_once(self) -> None:
        await run_auto_mint(self.factory, self.settings)

    async def _loop(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[None]],
        run_first: bool,
    ) -> None:
        try:
            if not run_first:
                await asyncio.sleep(interval)
            while True:
                try:
                    await job()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Chest job %s failed", name)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.debug("Chest job %s cancelled", name)
