from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .core.config import Settings, settings as default_settings
from .core.log import configure_logging

from .api.routes import router as api_router
import chair_monitor.api.routes as routes_module

from .domain.alert import AlertSignal
from .errors import PersistenceTimeout
from .services.history import HistoryStore
from .storage import build_backend


logger = logging.getLogger(__name__)


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    """Build an app owning its own history store and alert signal."""
    cfg = cfg or default_settings

    store = HistoryStore(build_backend(cfg), write_timeout_s=cfg.write_timeout_seconds)
    alert = AlertSignal()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg)
        logger.info("Starting %s (backend=%s)", cfg.app_name, store.backend.name)

        await store.load()

        try:
            yield
        finally:
            logger.info("Shutdown complete (%d entries in history)", len(store))

    app = FastAPI(title=cfg.app_name, lifespan=lifespan)
    app.state.store = store
    app.state.alert = alert
    app.state.settings = cfg

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Make the dependency functions in routes resolve to this app's instances
    app.dependency_overrides[routes_module.get_store] = lambda: store
    app.dependency_overrides[routes_module.get_alert] = lambda: alert
    app.dependency_overrides[routes_module.get_settings] = lambda: cfg

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "error": str(exc.detail)},
        )

    @app.exception_handler(PersistenceTimeout)
    async def write_timeout(request: Request, exc: PersistenceTimeout):
        return JSONResponse(status_code=503, content={"status": "error", "error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"status": "error", "error": str(exc)})

    app.include_router(api_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    run()
