"""
Endpoints de sesión local.

PUT    /session — Guardar el access token obtenido en el login
DELETE /session — Cerrar sesión (cancela el sync y vacía la cola)
"""

import logging

from fastapi import APIRouter, Depends, status

from hoofbook.api.dependencies import get_sync_context
from hoofbook.context import SyncContext
from hoofbook.core.exceptions import CredentialsException
from hoofbook.schemas.sync import SessionRequest, SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.put("", response_model=SessionResponse, summary="Iniciar sesión local")
async def start_session(
    data: SessionRequest,
    ctx: SyncContext = Depends(get_sync_context),
) -> SessionResponse:
    ctx.session.set_token(data.access_token)
    user_id = ctx.session.get_user_id()
    if not user_id:
        await ctx.session.sign_out()
        raise CredentialsException("Token inválido o expirado")

    # Con sesión válida arranca el sync periódico y se baja el estado remoto
    ctx.scheduler.schedule_periodic_sync()
    ctx.scheduler.trigger_immediate_sync()
    return SessionResponse(user_id=user_id)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, summary="Cerrar sesión")
async def end_session(ctx: SyncContext = Depends(get_sync_context)) -> None:
    await ctx.session.sign_out()
