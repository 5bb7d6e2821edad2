"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import text

import calico.modules  # noqa: F401
from calico.core.config import get_settings
from calico.core.database import SessionLocal, close_engine
from calico.core.metrics import build_metrics_response, instrument_http_request
from calico.modules.booking.router import router as booking_router
from calico.modules.identity.repository import IdentityRepository
from calico.modules.identity.router import router as identity_router
from calico.modules.identity.service import IdentityService
from calico.modules.joint.router import router as joint_router
from calico.modules.notifications.router import router as notifications_router
from calico.modules.scheduling.router import router as scheduling_router
from calico.modules.sessions.router import router as sessions_router
from calico.shared.exceptions import register_exception_handlers
from calico.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

API_ROUTERS = (
    identity_router,
    scheduling_router,
    booking_router,
    sessions_router,
    joint_router,
    notifications_router,
)


async def _bootstrap_roles() -> None:
    async with SessionLocal() as session:
        try:
            await IdentityService(IdentityRepository(session)).ensure_default_roles()
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Failed to ensure default roles")
            raise


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info(
        "Starting %s: %s-minute slots, approval %s, cancel lead %sh, display timezone %s",
        settings.app_name,
        settings.slot_duration_minutes,
        "required" if settings.session_requires_approval else "skipped",
        settings.session_cancel_lead_hours,
        settings.display_timezone,
    )
    await _bootstrap_roles()

    yield

    logger.info("Shutting down %s", settings.app_name)
    await close_engine()


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.middleware("http")(instrument_http_request)
register_exception_handlers(app)
for api_router in API_ROUTERS:
    app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


async def _is_database_ready() -> bool:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe.

    Only the database gates readiness. The calendar is a best-effort
    dependency, so its configuration is reported but never fails the probe.
    """
    if not await _is_database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "calendar": "configured" if settings.calendar_access_token else "not_configured",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    return build_metrics_response()
