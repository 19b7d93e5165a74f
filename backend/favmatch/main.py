"""favmatch: FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from favmatch.config import Settings, settings
from favmatch.errors import ContentionError, StoreError, UserNotFoundError
from favmatch.api import favorites, health, matches, users

logger = logging.getLogger(__name__)


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        from favmatch.clients.catalog import TitleCatalog
        from favmatch.database import init_db
        from favmatch.services.container import build_services
        from favmatch.services.integration_probe import probe_all
        from favmatch.store import build_store

        logging.basicConfig(
            level=config.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        store = build_store(config)
        if config.uses_sql_store:
            await init_db(store.engine)
        services = build_services(store, config, catalog=TitleCatalog.from_settings(config))
        app.state.services = services
        app.state.integrations = await probe_all(config, store)
        if config.sweeper_enabled:
            services.sweeper.start()
        logger.info("favmatch started with %s store", config.store_backend)
        yield
        # Shutdown: stop the sweeper, release the store
        await services.sweeper.stop()
        await store.close()

    app = FastAPI(
        title=config.app_name,
        version="0.1.0",
        description="Reciprocal matching on shared favorite anime and dramas",
        lifespan=lifespan,
        docs_url="/api/docs" if config.debug else None,
        redoc_url="/api/redoc" if config.debug else None,
    )

    # CORS: allow frontend dev server + production URL
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",     # Vite dev server
            config.app_url,
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error mapping ────────────────────────────────────────────
    @app.exception_handler(UserNotFoundError)
    async def user_not_found(request: Request, exc: UserNotFoundError):
        return JSONResponse(status_code=404, content={"detail": f"User {exc.user_id} not found"})

    @app.exception_handler(ContentionError)
    async def contention(request: Request, exc: ContentionError):
        return JSONResponse(status_code=409, content={"detail": str(exc), "attempts": exc.attempts})

    @app.exception_handler(StoreError)
    async def store_unavailable(request: Request, exc: StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    # ── Mount routers ────────────────────────────────────────────
    app.include_router(health.router,     prefix="/api/v1", tags=["system"])
    app.include_router(users.router,      prefix="/api/v1", tags=["users"])
    app.include_router(favorites.router,  prefix="/api/v1", tags=["favorites"])
    app.include_router(matches.router,    prefix="/api/v1", tags=["matches"])
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("favmatch.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
