"""
Modelo Horse — Caballos atendidos, siempre asociados a un cliente.
"""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hoofbook.database import Base, UTCDateTime, utcnow
from hoofbook.models.sync_queue import EntitySyncStatus


class Horse(Base):
    __tablename__ = "horses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    # ── Datos del caballo ────────────────────────────
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    breed: Mapped[str | None] = mapped_column(String(100))
    color: Mapped[str | None] = mapped_column(String(50))
    age: Mapped[int | None] = mapped_column(Integer)
    temperament: Mapped[str | None] = mapped_column(String(30))
    medical_notes: Mapped[str | None] = mapped_column(Text)

    # ── Ciclo de herraje ─────────────────────────────
    default_service_type: Mapped[str | None] = mapped_column(String(30))
    shoeing_cycle_weeks: Mapped[int | None] = mapped_column(Integer)
    last_service_date: Mapped[date | None] = mapped_column(Date)
    next_due_date: Mapped[date | None] = mapped_column(Date)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # ── Timestamps y estado de sync ──────────────────
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    sync_status: Mapped[EntitySyncStatus] = mapped_column(
        Enum(EntitySyncStatus), nullable=False, default=EntitySyncStatus.SYNCED
    )

    __table_args__ = (
        Index("idx_horse_client", "client_id"),
        Index("idx_horse_next_due", "next_due_date"),
    )

    def __repr__(self) -> str:
        return f"<Horse {self.id} {self.name} client={self.client_id}>"
