"""
Modelo ServicePrice — Lista de precios por tipo de servicio.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from hoofbook.database import Base, UTCDateTime, utcnow
from hoofbook.models.sync_queue import EntitySyncStatus


class ServicePrice(Base):
    __tablename__ = "service_prices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)

    service_type: Mapped[str] = mapped_column(
        String(30), nullable=False,
        comment="TRIM, FRONT_SHOES, FULL_SET, CORRECTIVE, RESET, PULL_SHOES, CUSTOM"
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    duration_minutes: Mapped[int] = mapped_column(Integer, default=45)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    is_built_in: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # ── Timestamps y estado de sync ──────────────────
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    sync_status: Mapped[EntitySyncStatus] = mapped_column(
        Enum(EntitySyncStatus), nullable=False, default=EntitySyncStatus.SYNCED
    )

    __table_args__ = (
        Index("idx_service_price_user", "user_id"),
    )
