"""Health check endpoints."""

from fastapi import APIRouter, Request
from datetime import datetime, timezone
import asyncio
import logging

from depict_jobs import __version__
from depict_jobs.config import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
async def health_check():
    """Basic health check - always returns ok if service is running."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "depict-jobs",
        "version": __version__,
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """
    Readiness check including the job store.
    Degraded mode still answers ok-ish: producers keep working, jobs are not persisted.
    """
    settings = get_settings()
    registry = getattr(request.app.state, "registry", None)
    checks = {}
    overall_status = "ok"

    if registry is None:
        checks["store"] = {"status": "not_initialized"}
        overall_status = "starting"
    elif registry.is_degraded:
        checks["store"] = {"status": "unavailable"}
        overall_status = "degraded"
    else:
        store_status = await _check_store(registry.store)
        checks["store"] = store_status
        if store_status["status"] != "ok":
            overall_status = "degraded"

    return {
        "status": overall_status,
        "degraded": registry is None or registry.is_degraded,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "queues": registry.names() if registry is not None else [],
        "config": {
            "queue_backend": settings.queue_backend,
            "redis_url": settings.redis_url.split("@")[-1] if "@" in settings.redis_url else settings.redis_url,
        },
    }


async def _check_store(store) -> dict:
    """Ping the job store."""
    try:
        await asyncio.wait_for(store.ping(), timeout=5.0)
        return {"status": "ok"}
    except asyncio.TimeoutError:
        return {"status": "timeout", "error": "Connection timed out"}
    except Exception as e:
        logger.warning(f"Store health check failed: {e}")
        return {"status": "error", "error": str(e)}
