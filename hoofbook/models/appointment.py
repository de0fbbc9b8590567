"""
Modelo Appointment + AppointmentHorse — Citas y caballos asignados.

Una cita es una entidad compuesta: se sincroniza junto con sus filas
hijas (appointment_horses). En el pull, las hijas se reemplazan completas
(delete + insert) en lugar de calcular diferencias.

Estados válidos:
    SCHEDULED → CONFIRMED → IN_PROGRESS → COMPLETED
    SCHEDULED/CONFIRMED → CANCELLED | NO_SHOW
"""

import enum
import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hoofbook.database import Base, UTCDateTime, utcnow
from hoofbook.models.sync_queue import EntitySyncStatus


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )

    # ── Datos de la cita ─────────────────────────────
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time | None] = mapped_column(Time)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=45)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED
    )
    address: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    # ── Recordatorios y cierre ───────────────────────
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    confirmation_received: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    cancelled_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime())
    cancellation_reason: Mapped[str | None] = mapped_column(String(500))

    # ── Timestamps y estado de sync ──────────────────
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    sync_status: Mapped[EntitySyncStatus] = mapped_column(
        Enum(EntitySyncStatus), nullable=False, default=EntitySyncStatus.SYNCED
    )

    # ── Relaciones ───────────────────────────────────
    horses: Mapped[list["AppointmentHorse"]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_appointment_user_date", "user_id", "date"),
        Index("idx_appointment_client", "client_id"),
        Index("idx_appointment_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.id} [{self.status.value}] {self.date}>"


class AppointmentHorse(Base):
    __tablename__ = "appointment_horses"

    appointment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True
    )
    # Sin FK a horses: el pull puede traer asignaciones de caballos
    # que todavía no llegaron a la base local.
    horse_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    service_type: Mapped[str] = mapped_column(String(30), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    appointment: Mapped[Appointment] = relationship(back_populates="horses")

    __table_args__ = (
        Index("idx_appointment_horse_horse", "horse_id"),
    )
