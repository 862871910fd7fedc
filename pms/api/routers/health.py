"""
Health checks para monitoreo y orquestación.

- /health: liveness (siempre 200)
- /health/ready: readiness (persistencia alcanzable, workers corriendo)
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pms.api.dependencies import Container, get_container

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "hotel-pms-core"}


@router.get("/health/ready")
async def health_check_ready(container: Container = Depends(get_container)):
    checks = {
        "persistence": "healthy" if await container.reservation_repo.is_available() else "unhealthy",
        "workflow_engine": "running" if container.workflow.stats()["running"] else "stopped",
        "sync_worker": "running" if container.sync_worker.is_running else "stopped",
    }
    if container.breakers is not None:
        checks["channel_breakers"] = container.breakers.states()

    if checks["persistence"] != "healthy":
        logger.error("Readiness check: persistence unhealthy")
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": checks})
    return {"status": "ready", "checks": checks}
