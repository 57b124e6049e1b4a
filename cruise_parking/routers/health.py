"""
Health Check Endpoints

- /health          process is up, no dependencies touched
- /health/live     liveness probe
- /health/ready    readiness probe (database answers)
- /health/detailed database, order feed, last sync run and scheduler
"""

import time
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import __version__
from ..config import settings
from ..database import get_db
from ..services.occupancy_service import OccupancyQueryService
from ..services.sync_scheduler import get_scheduler_status
from ..services.sync_tracker import SyncRunTracker

router = APIRouter(prefix="/health", tags=["Health"])

# Component states that make the service degraded but still usable
DEGRADED_STATES = {"degraded", "timeout", "down", "failed"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def check_database(db: Session) -> dict:
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "down", "error": str(e)[:100]}
    return {"status": "up", "latency_ms": _elapsed_ms(start), "type": db.get_bind().dialect.name}


async def check_order_feed() -> dict:
    """One authenticated GET /orders?per_page=1 against WooCommerce."""
    if not settings.has_feed_credentials:
        return {"status": "not_configured"}

    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(
            timeout=5.0,
            auth=httpx.BasicAuth(settings.woo_consumer_key, settings.woo_consumer_secret)
        ) as client:
            response = await client.get(f"{settings.woo_base_url.rstrip('/')}/orders", params={"per_page": 1})
    except httpx.TimeoutException:
        return {"status": "timeout"}
    except httpx.HTTPError as e:
        return {"status": "down", "error": str(e)[:50]}

    if response.status_code >= 400:
        return {"status": "degraded", "http_status": response.status_code}
    return {"status": "up", "latency_ms": _elapsed_ms(start)}


def check_last_sync(db: Session) -> dict:
    run = SyncRunTracker(db).latest()
    if run is None:
        return {"status": "never_run"}
    return {
        "status": run.status,
        "sync_type": run.sync_type,
        "started_at": run.started_at.isoformat(),
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "error_count": len(run.errors or []),
        "aggregate_stale": OccupancyQueryService(db).is_stale(),
    }


@router.get("")
@router.get("/")
async def simple_health_check():
    return {"status": "healthy", "timestamp": _now(), "version": __version__}


@router.get("/live")
@router.get("/live/")
async def liveness_check():
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
@router.get("/ready/")
def readiness_check(db: Session = Depends(get_db)):
    """Ready once the database answers; 503 otherwise."""
    if check_database(db)["status"] != "up":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "reason": "database_unavailable", "timestamp": _now()}
        )
    return {"status": "ready", "timestamp": _now()}


@router.get("/detailed")
@router.get("/detailed/")
async def detailed_health_check(db: Session = Depends(get_db)):
    database = check_database(db)
    checks = {
        "database": database,
        "order_feed": await check_order_feed(),
        "last_sync": check_last_sync(db) if database["status"] == "up" else {"status": "unknown"},
        "scheduler": get_scheduler_status(),
    }

    if database["status"] == "down":
        overall = "unhealthy"
    elif any(check.get("status") in DEGRADED_STATES for check in checks.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "status": overall,
        "timestamp": _now(),
        "version": __version__,
        "environment": settings.environment,
        "checks": checks,
        "config": {
            "lot_capacity": settings.lot_capacity,
            "sync_schedule_enabled": settings.sync_schedule_enabled,
            "sync_interval_minutes": settings.sync_interval_minutes,
        },
    }
