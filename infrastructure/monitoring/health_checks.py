"""
Health check endpoints for monitoring system status
"""
import time
from typing import Dict, Any

from fastapi import APIRouter, HTTPException

from core.database.connection import check_connection
from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """Readiness check - verifies the ledger database is reachable"""
    db_status = await check_database()
    orchestrator_status = check_orchestrator()

    if db_status["status"] != "healthy":
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "components": {"database": db_status}},
        )

    return {
        "status": "ready",
        "timestamp": time.time(),
        "components": {
            "database": db_status,
            "orchestrator": orchestrator_status,
        },
    }


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    """Liveness check - verifies the application is running"""
    return {
        "status": "alive",
        "timestamp": time.time(),
        "uptime": time.time() - getattr(liveness_check, "_start_time", time.time()),
    }


# Store start time for uptime calculation
liveness_check._start_time = time.time()


async def check_database() -> Dict[str, Any]:
    """Check database connectivity"""
    try:
        await check_connection()
        return {
            "status": "healthy",
            "message": "Database connection OK",
        }
    except Exception as e:
        logger.warning(f"⚠️ Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Database error: {str(e)}",
        }


def check_orchestrator() -> Dict[str, Any]:
    """
    Report the in-process orchestrator, if this process runs one

    The orchestrator usually runs in the worker process, so "not running"
    is informational here, not a readiness failure.
    """
    from core.services.bridge import orchestrator as orchestrator_module

    instance = orchestrator_module._bridge_orchestrator
    if instance is None:
        return {"status": "not_running", "message": "Orchestrator runs in the worker process"}
    status = instance.get_status()
    return {
        "status": "running" if status["running"] else "stopped",
        "active_tasks": status["active_tasks"],
        "parked": len(status["parked"]),
    }
