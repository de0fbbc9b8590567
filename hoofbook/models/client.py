"""
Modelo Client — Clientes (dueños de caballos) del herrador.
"""

from datetime import datetime

from sqlalchemy import Boolean, Enum, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hoofbook.database import Base, UTCDateTime, utcnow
from hoofbook.models.sync_queue import EntitySyncStatus


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    # ── Datos de contacto ────────────────────────────
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(100))
    business_name: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200))

    # ── Ubicación ────────────────────────────────────
    address: Mapped[str | None] = mapped_column(String(500))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    zip_code: Mapped[str | None] = mapped_column(String(20))
    access_notes: Mapped[str | None] = mapped_column(Text)

    notes: Mapped[str | None] = mapped_column(Text)
    reminder_preference: Mapped[str] = mapped_column(String(20), default="SMS")
    reminder_hours: Mapped[int] = mapped_column(Integer, default=24)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # ── Timestamps y estado de sync ──────────────────
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    sync_status: Mapped[EntitySyncStatus] = mapped_column(
        Enum(EntitySyncStatus), nullable=False, default=EntitySyncStatus.SYNCED
    )

    __table_args__ = (
        Index("idx_client_user_active", "user_id", "is_active"),
        Index("idx_client_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Client {self.id} {self.name} [{self.sync_status.value}]>"
