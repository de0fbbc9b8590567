"""
Excepciones del motor de sincronización y excepciones HTTP de la API local.

Taxonomía de sync:
    NotAuthenticated     → sin sesión activa; falla el ciclo completo
    NetworkUnavailable   → sin conectividad; el ciclo se reintenta
    RemoteRejected       → el backend rechazó un ítem concreto
    LocalEntityMissing   → la entidad encolada ya no existe localmente
    UnsupportedEntityType→ no hay handler registrado para el tipo
    PullSkipped          → un registro remoto no se pudo reconciliar
"""

from fastapi import HTTPException, status


# ── Errores de sincronización ────────────────────────

class SyncError(Exception):
    """Base de todos los errores del motor de sync."""


class NotAuthenticated(SyncError):
    def __init__(self, detail: str = "Usuario no autenticado"):
        super().__init__(detail)


class NetworkUnavailable(SyncError):
    def __init__(self, detail: str = "Sin conexión de red"):
        super().__init__(detail)


class RemoteRejected(SyncError):
    """El backend respondió con error para una operación puntual."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Backend rechazó la operación ({status_code}): {detail}")


class LocalEntityMissing(SyncError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} no existe localmente")


class UnsupportedEntityType(SyncError):
    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Tipo de entidad no soportado: {entity_type}")


class PullSkipped(SyncError):
    """Registro remoto omitido durante el pull (se loguea, no se propaga)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# ── Excepciones HTTP de la API local ─────────────────

class CredentialsException(HTTPException):
    """Sin sesión activa (401)."""

    def __init__(self, detail: str = "Usuario no autenticado"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
        )
