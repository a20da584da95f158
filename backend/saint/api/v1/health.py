"""Health check endpoint."""

import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from saint.api.deps import get_app_settings, get_scheduler
from saint.config import Settings
from saint.core.scheduler import ExecutionScheduler

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request,
    scheduler: ExecutionScheduler = Depends(get_scheduler),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Report service status, capacity and record store connectivity."""
    result: dict[str, Any] = {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "supported_browsers": settings.supported_browsers,
        "max_concurrent_tests": scheduler.capacity,
        "active_executions": scheduler.active_count,
        "queued_executions": scheduler.queued_count,
        "services": {},
    }

    try:
        start = time.monotonic()
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        result["services"]["database"] = {
            "status": "healthy",
            "latency_ms": round((time.monotonic() - start) * 1000, 2),
        }
    except Exception as exc:
        result["services"]["database"] = {"status": "unhealthy", "error": str(exc)}
        result["status"] = "degraded"

    return result
