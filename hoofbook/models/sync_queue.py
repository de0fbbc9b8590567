"""
Modelo SyncQueueEntry — Cola local de mutaciones pendientes de push.

Cada fila describe un cambio local (CREATE/UPDATE/DELETE) que todavía no
fue confirmado por el backend remoto. El payload es un snapshot JSON de la
entidad al momento de encolar y la cola no lo interpreta.

Ciclo de vida:
    PENDING → COMPLETED (y se borra en la misma transacción)
    PENDING → FAILED → (se reintenta en el próximo ciclo)
"""

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from hoofbook.database import Base, UTCDateTime, utcnow


class EntityType(str, enum.Enum):
    """Tipos de entidad que participan de la sincronización."""
    CLIENT = "client"
    HORSE = "horse"
    SERVICE_PRICE = "service_price"
    APPOINTMENT = "appointment"
    INVOICE = "invoice"


class SyncOperation(str, enum.Enum):
    """Operación encolada. La prioridad solo afecta el orden del batch."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    @property
    def priority(self) -> int:
        return _OPERATION_PRIORITY[self]


_OPERATION_PRIORITY: dict[SyncOperation, int] = {
    SyncOperation.UPDATE: 2,
    SyncOperation.CREATE: 1,
    SyncOperation.DELETE: 0,
}


class QueueStatus(str, enum.Enum):
    """Estados de una entrada de la cola."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"       # Reintentable: sigue entrando en el batch


class EntitySyncStatus(str, enum.Enum):
    """Marca por entidad: si tiene cambios locales sin confirmar."""
    SYNCED = "SYNCED"
    PENDING_CREATE = "PENDING_CREATE"
    PENDING_UPDATE = "PENDING_UPDATE"


# Estados que cuentan como "activos" (pendientes de push)
ACTIVE_STATUSES = (QueueStatus.PENDING, QueueStatus.FAILED)


class SyncQueueEntry(Base):
    __tablename__ = "sync_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Entidad afectada ─────────────────────────────
    entity_type: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="client, horse, service_price, appointment, invoice"
    )
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # ── Operación ────────────────────────────────────
    operation: Mapped[SyncOperation] = mapped_column(
        Enum(SyncOperation), nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Estado y diagnóstico ─────────────────────────
    status: Mapped[QueueStatus] = mapped_column(
        Enum(QueueStatus), nullable=False, default=QueueStatus.PENDING
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(String(2000))

    # ── Timestamps ───────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow
    )

    # ── Índices ──────────────────────────────────────
    __table_args__ = (
        Index("idx_sync_queue_entity", "entity_type", "entity_id"),
        Index("idx_sync_queue_status", "status"),
        Index("idx_sync_queue_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncQueueEntry {self.id} {self.operation.value} "
            f"{self.entity_type}:{self.entity_id} [{self.status.value}]>"
        )
