from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import routes as routes_module
from .services.runtime import DriverRuntime

logger = logging.getLogger(__name__)


def create_app(runtime: DriverRuntime) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s driver (interval=%s)",
            runtime.profile.kind,
            runtime.settings.poll_interval,
        )
        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()
            logger.info("Shutdown complete")

    app = FastAPI(title=f"devicebridge ({runtime.profile.kind})", lifespan=lifespan)
    app.dependency_overrides[routes_module.get_runtime] = lambda: runtime
    app.include_router(routes_module.router, prefix="/api")
    return app
