"""
Endpoints de control del motor de sincronización.

GET  /sync/status  — Estado para la UI (badge de pendientes + estado)
POST /sync         — Disparar un sync inmediato (no bloquea)
POST /sync/run     — Ejecutar un ciclo completo y devolver el resultado
POST /sync/async   — Encolar un ciclo en los workers Celery
PUT  /sync/network — Informar el estado de conectividad
"""

import logging

from fastapi import APIRouter, Depends, status

from hoofbook.api.dependencies import get_current_user_id, get_sync_context
from hoofbook.context import SyncContext
from hoofbook.schemas.sync import (
    NetworkStateRequest,
    SyncResult,
    SyncStatusResponse,
    SyncTriggerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/status",
    response_model=SyncStatusResponse,
    summary="Estado de sincronización",
)
async def sync_status(ctx: SyncContext = Depends(get_sync_context)) -> SyncStatusResponse:
    return SyncStatusResponse(
        state=ctx.scheduler.state.value,
        pending_count=await ctx.queue.get_pending_count(),
        last_result=ctx.orchestrator.last_result,
        last_sync_at=ctx.orchestrator.last_sync_at,
    )


@router.post(
    "",
    response_model=SyncTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Disparar sync inmediato",
)
async def trigger_sync(
    ctx: SyncContext = Depends(get_sync_context),
    user_id: str = Depends(get_current_user_id),
) -> SyncTriggerResponse:
    job_id = ctx.scheduler.trigger_immediate_sync()
    logger.info(f"Sync inmediato encolado para {user_id}: job={job_id}")
    return SyncTriggerResponse(
        status="queued",
        job_id=job_id,
        message="Sincronización encolada",
    )


@router.post(
    "/run",
    response_model=SyncResult,
    summary="Ejecutar un ciclo de sync",
    description=(
        "Corre push + pull en el request. Sin sesión responde 401 y sin "
        "conexión con el servidor responde 503."
    ),
)
async def run_sync(
    ctx: SyncContext = Depends(get_sync_context),
    user_id: str = Depends(get_current_user_id),
) -> SyncResult:
    return await ctx.orchestrator.perform_sync()


@router.post(
    "/async",
    response_model=SyncTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Encolar sync en workers",
)
async def run_sync_async(
    user_id: str = Depends(get_current_user_id),
) -> SyncTriggerResponse:
    from hoofbook.tasks.sync_tasks import run_sync_cycle

    task = run_sync_cycle.delay(user_id)
    logger.info(f"Sync encolado en Celery para {user_id}: task={task.id}")
    return SyncTriggerResponse(
        status="queued",
        job_id=task.id,
        message="Sincronización encolada en workers",
    )


@router.put(
    "/network",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Informar conectividad",
)
async def set_network_state(
    data: NetworkStateRequest,
    ctx: SyncContext = Depends(get_sync_context),
) -> None:
    ctx.network.set_online(data.online)
