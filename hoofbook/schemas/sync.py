"""
Schemas del motor de sincronización y de la API local de control.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """Resultado agregado de un ciclo push/pull."""
    pushed_count: int = Field(0, description="Mutaciones locales confirmadas por el backend")
    pulled_count: int = Field(0, description="Registros remotos insertados o actualizados")
    failed_count: int = Field(0, description="Ítems de la cola que fallaron en este ciclo")
    skipped_count: int = Field(0, description="Registros remotos omitidos en el pull")


class SyncStatusResponse(BaseModel):
    """Estado visible para la UI: badge de pendientes + estado general."""
    state: Literal["IDLE", "PENDING", "SYNCING", "FAILED"]
    pending_count: int = 0
    last_result: SyncResult | None = None
    last_sync_at: datetime | None = None


class SyncTriggerResponse(BaseModel):
    status: str = "queued"
    job_id: str | None = None
    message: str = ""


class NetworkStateRequest(BaseModel):
    online: bool


class SessionRequest(BaseModel):
    access_token: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    user_id: str
