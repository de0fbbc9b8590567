"""
Dependencies de FastAPI: acceso al motor de sync y a la sesión actual.
"""

from fastapi import Depends, Request

from hoofbook.context import SyncContext
from hoofbook.core.exceptions import CredentialsException


def get_sync_context(request: Request) -> SyncContext:
    """El contexto se arma una vez en el lifespan y vive en app.state."""
    return request.app.state.sync_context


def get_current_user_id(ctx: SyncContext = Depends(get_sync_context)) -> str:
    user_id = ctx.session.get_user_id()
    if not user_id:
        raise CredentialsException("No hay sesión activa")
    return user_id
