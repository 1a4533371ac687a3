"""
Health check service.

Checks database connectivity and identity-provider discovery, and tracks
uptime. Returns structured health responses with per-component status.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import text

from auth.context import AuthContext
from auth.errors import DiscoveryError
from config import settings
from database import AsyncSessionLocal

logger = logging.getLogger(__name__)

# Captured at module load, used to compute uptime
_start_time = time.monotonic()


class ComponentHealth(BaseModel):
    name: str
    status: str  # "ok" | "disabled" | "error"
    message: Optional[str] = None
    response_time_ms: Optional[float] = None


class HealthResponse(BaseModel):
    status: str  # "healthy" | "degraded" | "unhealthy"
    app: str
    version: str
    uptime_seconds: float
    checks: list[ComponentHealth]
    timestamp: str


async def check_database(session_factory=AsyncSessionLocal) -> ComponentHealth:
    """Check database connectivity by running SELECT 1."""
    start = time.perf_counter()
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="ok",
            response_time_ms=round(elapsed, 1),
        )
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            name="database",
            status="error",
            message=str(e),
            response_time_ms=round(elapsed, 1),
        )


async def check_identity_provider(auth: Optional[AuthContext]) -> ComponentHealth:
    """Check that OIDC discovery succeeds (served from cache when warm)."""
    if auth is None:
        return ComponentHealth(
            name="identity_provider", status="error", message="Auth not initialised"
        )
    start = time.perf_counter()
    try:
        await auth.oidc.config()
    except DiscoveryError as e:
        return ComponentHealth(
            name="identity_provider",
            status="error",
            message=e.message,
            response_time_ms=round((time.perf_counter() - start) * 1000, 1),
        )
    return ComponentHealth(
        name="identity_provider",
        status="ok",
        response_time_ms=round((time.perf_counter() - start) * 1000, 1),
    )


def check_oauth2_provider(auth: Optional[AuthContext]) -> ComponentHealth:
    enabled = auth is not None and auth.oauth2_enabled
    return ComponentHealth(
        name="microsoft_login",
        status="ok" if enabled else "disabled",
    )


async def run_health_checks(
    auth: Optional[AuthContext] = None,
    session_factory=AsyncSessionLocal,
) -> HealthResponse:
    """Run all health checks and return aggregated status."""
    checks = [
        await check_database(session_factory),
        await check_identity_provider(auth),
        check_oauth2_provider(auth),
    ]

    # Database is critical: if it is down, the service is unhealthy.
    # Login provider trouble only degrades the service.
    critical_names = {"database"}
    has_critical_error = any(
        c.status == "error" and c.name in critical_names for c in checks
    )
    has_any_error = any(c.status == "error" for c in checks)

    if has_critical_error:
        overall = "unhealthy"
    elif has_any_error:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        uptime_seconds=round(time.monotonic() - _start_time, 1),
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
