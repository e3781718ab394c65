from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import BusOpsError
from .logging import RequestIdMiddleware
from .runtime import Runtime
from .auth.router import router as auth_router
from .routes.missions import router as missions_router
from .routes.notifications import router as notifications_router
from .routes.fleet import router as fleet_router
from .routes.work_times import router as work_times_router
from .routes.companies import router as companies_router


logger = structlog.get_logger(__name__)


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """ASGI factory; serve with ``uvicorn --factory busops.main:create_app``."""
    runtime = runtime or Runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime.initialize()
        try:
            yield
        finally:
            runtime.teardown()

    app = FastAPI(title=runtime.settings.app_name, lifespan=lifespan)
    app.state.runtime = runtime

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BusOpsError)
    async def _busops_error(request: Request, exc: BusOpsError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Routers
    app.include_router(auth_router)
    app.include_router(missions_router)
    app.include_router(notifications_router)
    app.include_router(fleet_router)
    app.include_router(work_times_router)
    app.include_router(companies_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "app": runtime.settings.app_name}

    return app
