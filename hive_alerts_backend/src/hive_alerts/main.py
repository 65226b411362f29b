from __future__ import annotations

import asyncio
import logging
import os
from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.hive_alerts.config import BackendConfig, load_config
from src.hive_alerts.routers import alerts, checks, health, thresholds
from src.hive_alerts.services.check_scheduler import alert_check_loop
from src.hive_alerts.services.notifications import NotificationDispatcher
from src.hive_alerts.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and storage diagnostics."},
    {"name": "Thresholds", "description": "Global threshold profile, per-hive overrides and effective thresholds."},
    {"name": "Alerts", "description": "Alert ledger: list, report, resolve and statistics."},
    {"name": "Checks", "description": "Run, schedule and inspect alert checks over hive sensor samples."},
]

logger = logging.getLogger(__name__)


def _env_frontend_url() -> str | None:
    # Support both:
    # - standardized: FRONTEND_URL
    # - legacy: REACT_APP_FRONTEND_URL
    return os.getenv("FRONTEND_URL") or os.getenv("REACT_APP_FRONTEND_URL")


def _env_cors_extra_origins() -> List[str]:
    # Comma-separated list for preview deployments, etc.
    raw = os.getenv("CORS_ALLOW_ORIGINS") or ""
    return [p.strip() for p in raw.split(",") if p.strip()]


def _allowed_origins() -> List[str]:
    origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    frontend_url = _env_frontend_url()
    if frontend_url:
        origins.append(frontend_url)
    origins.extend(_env_cors_extra_origins())
    # De-dupe while preserving order
    seen = set()
    return [o for o in origins if not (o in seen or seen.add(o))]


# PUBLIC_INTERFACE
def create_app(
    config: Optional[BackendConfig] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> FastAPI:
    """Build the API app: typed state, lifecycle hooks, CORS and routers."""
    app = FastAPI(
        title="Hive Alerts API",
        description=(
            "Alert engine for beehive sensor monitoring. Resolves per-hive thresholds, "
            "detects anomalies in sensor samples, keeps at most one active alert per hive and "
            "alert type, and runs periodic checks in the background."
        ),
        version="0.1.0",
        openapi_tags=openapi_tags,
    )

    init_state(app, config or load_config(), dispatcher)

    @app.on_event("startup")
    async def _on_startup() -> None:
        """Startup hook: connect to Mongo, ensure indexes, and start the periodic alert check."""
        state = get_state(app)

        if state.mongo is not None:
            # Connect + verify early so a misconfigured Mongo doesn't silently break the checks.
            state.mongo.connect()
            if not state.mongo.ping():
                raise RuntimeError("Mongo connectivity check failed during startup. Verify BACKEND_MONGO_URI.")
            state.mongo.init_indexes()

        if state.config.alert_check_enabled:
            app.state._check_shutdown = asyncio.Event()
            state.check_task = asyncio.create_task(alert_check_loop(state, app.state._check_shutdown))
        else:
            logger.info("Periodic alert check disabled (ALERT_CHECK_ENABLED=false)")

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        """Shutdown hook: stop the periodic check and close Mongo connections."""
        state = get_state(app)

        check_shutdown = getattr(app.state, "_check_shutdown", None)
        if check_shutdown is not None:
            check_shutdown.set()
        check_task = state.check_task
        if check_task is not None:
            try:
                await asyncio.wait_for(check_task, timeout=5.0)
            except Exception:
                logger.exception("Error stopping alert check task")

        if state.mongo is not None:
            state.mongo.close()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(thresholds.router)
    app.include_router(alerts.router)
    app.include_router(checks.router)
    return app


app = create_app()
