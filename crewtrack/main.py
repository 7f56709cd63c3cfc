from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crewtrack.api.dashboard import router as dashboard_router
from crewtrack.api.errors import register_exception_handlers
from crewtrack.api.health import router as health_router
from crewtrack.api.maintenance import router as maintenance_router
from crewtrack.api.projects import router as projects_router
from crewtrack.api.tasks import router as tasks_router
from crewtrack.core.config import get_settings
from crewtrack.core.logging import TraceContextMiddleware, configure_logging, get_logger
from crewtrack.db.bootstrap import initialize_database
from crewtrack.db.engine import dispose_engine, get_engine
from crewtrack.orchestration.sweeper import run_escalation_sweep_loop

logger = get_logger("crewtrack.main")


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if settings.db_auto_init:
            initialize_database(database_url=settings.database_url)
        get_engine()
        sweep_task: asyncio.Task[None] | None = None
        if settings.escalation_sweep_enabled:
            sweep_task = asyncio.create_task(
                run_escalation_sweep_loop(interval_seconds=settings.escalation_sweep_interval_s)
            )
            logger.info(
                "escalation_sweep.started",
                interval_seconds=settings.escalation_sweep_interval_s,
            )
        try:
            yield
        finally:
            if sweep_task is not None:
                sweep_task.cancel()
                with suppress(asyncio.CancelledError):
                    await sweep_task
            dispose_engine()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TraceContextMiddleware)
    app.include_router(health_router)
    app.include_router(tasks_router, prefix="/api/v1")
    app.include_router(projects_router, prefix="/api/v1")
    app.include_router(maintenance_router, prefix="/api/v1")
    app.include_router(dashboard_router, prefix="/api/v1")
    return app


app = create_app()
