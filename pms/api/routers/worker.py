"""Operación manual del workflow y del worker de sincronización."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from pms.api.dependencies import Container, get_container
from pms.domain.events import ScheduledCheck

router = APIRouter()


@router.get("/workflow/stats")
async def workflow_stats(container: Annotated[Container, Depends(get_container)]) -> dict:
    return container.workflow.stats()


@router.post("/workflow/rules/{rule_id}/enable")
async def enable_rule(rule_id: str, container: Annotated[Container, Depends(get_container)]) -> dict:
    if not container.workflow.enable_rule(rule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow rule not found: {rule_id}")
    return {"rule_id": rule_id, "enabled": True}


@router.post("/workflow/rules/{rule_id}/disable")
async def disable_rule(rule_id: str, container: Annotated[Container, Depends(get_container)]) -> dict:
    if not container.workflow.disable_rule(rule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow rule not found: {rule_id}")
    return {"rule_id": rule_id, "enabled": False}


@router.post("/workflow/checks/{check}")
async def run_check(check: ScheduledCheck, container: Annotated[Container, Depends(get_container)]) -> dict:
    """Ejecuta de inmediato una revisión periódica."""
    runners = {
        ScheduledCheck.EXPIRED_HOLDS: container.workflow.check_expired_holds,
        ScheduledCheck.NO_SHOWS: container.workflow.check_no_shows,
        ScheduledCheck.OVERDUE_CHECKOUTS: container.workflow.check_overdue_checkouts,
    }
    handled = await runners[check]()
    return {"check": check.value, "handled": handled}


@router.post("/workers/sync/process", status_code=status.HTTP_200_OK)
async def process_sync_batch(container: Annotated[Container, Depends(get_container)]) -> dict:
    """Procesa un lote de la cola de sincronización fuera del ciclo de polling."""
    if container.sync_worker.is_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Sync worker is running; manual processing is disabled",
        )
    processed = await container.sync_worker.process_batch()
    return {"processed": processed}
