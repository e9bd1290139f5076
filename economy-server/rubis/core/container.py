"""Simple dependency container for wiring core services."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from rubis.core.config import Settings, get_settings
from rubis.infrastructure.database.session import get_engine
from rubis.jobs.chest_jobs import ChestJobRunner


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    jobs: Optional[ChestJobRunner] = field(default=None)

    def init_infrastructure(self) -> None:
        """Ensure infrastructure singletons (database engine, etc.) are initialised."""
        get_engine()

    def start_jobs(self) -> None:
        if not self.settings.jobs.enabled:
            return
        if self.jobs is None:
            self.jobs = ChestJobRunner(self.settings)
        self.jobs.start()

    async def stop_jobs(self) -> None:
        if self.jobs is not None:
            await self.jobs.stop()


@lru_cache()
def get_container() -> ApplicationContainer:
    container = ApplicationContainer(settings=get_settings())
    container.init_infrastructure()
    return container


__all__ = ["ApplicationContainer", "get_container"]
