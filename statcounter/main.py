from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from .config import settings
from .database import init_db
from .repositories.stats import delete_stats_older_than
from .services.retention import RetentionScheduler
from .services.summa import AggregateStore

from .api.auth import router as auth_router
from .api.stats import router as stats_router

logger = logging.getLogger(__name__)


def create_app(
    *,
    summa: Optional[AggregateStore] = None,
    retention: Optional[bool] = None,
    create_tables: bool = True,
) -> FastAPI:
    app = FastAPI(
        title="StatCounter API",
        version=settings.app_version,
    )

    # One aggregate per process, shared by every request and the retention job.
    app.state.summa = summa or AggregateStore()
    app.state.retention = None
    run_retention = settings.retention_enabled if retention is None else retention

    # --- Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="session",
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=settings.session_https_only,
    )

    # --- Lifecycle ---
    @app.on_event("startup")
    def _startup() -> None:
        init_db(create_tables=create_tables)
        if run_retention:
            scheduler = RetentionScheduler(delete_stats_older_than, app.state.summa)
            scheduler.start()
            app.state.retention = scheduler
            logger.info("retention job started")

    @app.on_event("shutdown")
    def _shutdown() -> None:
        scheduler: Optional[RetentionScheduler] = app.state.retention
        if scheduler is not None:
            scheduler.stop()
            logger.info("retention job stopped (state=%s)", scheduler.state.value)

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": settings.env}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": settings.app_version}

    # --- API routers ---
    app.include_router(auth_router)
    app.include_router(stats_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    if settings.session_secret == "change-me" and settings.is_prod:
        raise RuntimeError("SESSION_SECRET must be set in production.")

    # Single worker: the aggregate lives in this process's memory.
    uvicorn.run(
        "statcounter.main:app",
        host=settings.host,
        port=int(settings.port),
        reload=bool(settings.reload),
    )
