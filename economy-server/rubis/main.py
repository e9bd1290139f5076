import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rubis import __version__
from rubis.core.config import get_settings
from rubis.core.container import get_container
from rubis.infrastructure.database.session import init_db
from rubis.interfaces.http import create_api_router, register_error_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = get_container()
    if container.settings.environment in {"development", "test"}:
        await init_db()
    container.start_jobs()
    try:
        yield
    finally:
        await container.stop_jobs()


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title=settings.project_name,
        description="Rubis virtual currency ledger and streamer chests",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(create_api_router(settings.api_prefix))

    @app.get("/health", include_in_schema=False)
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "rubis.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.server.reload,
        log_level=settings.log_level.lower(),
    )


app = create_app()
