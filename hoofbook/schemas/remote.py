"""
Schemas de las entidades tal como viajan hacia/desde el backend remoto.

Se usan en ambos sentidos:
- push: se construyen desde el modelo local (from_attributes) y se
  serializan con model_dump(mode="json")
- pull: se validan desde el JSON remoto y se convierten a modelos locales
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from hoofbook.database import utcnow
from hoofbook.models.appointment import AppointmentStatus
from hoofbook.models.invoice import InvoiceStatus


class RemoteEntity(BaseModel):
    """Campos comunes: id estable local/remoto y timestamps para LWW."""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    user_id: str
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)


# ── Entidades simples ────────────────────────────────

class ClientDTO(RemoteEntity):
    name: str
    first_name: str
    last_name: str | None = None
    business_name: str | None = None
    phone: str
    email: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    access_notes: str | None = None
    notes: str | None = None
    reminder_preference: str = "SMS"
    reminder_hours: int = 24
    is_active: bool = True


class HorseDTO(RemoteEntity):
    client_id: str
    name: str
    breed: str | None = None
    color: str | None = None
    age: int | None = None
    temperament: str | None = None
    medical_notes: str | None = None
    default_service_type: str | None = None
    shoeing_cycle_weeks: int | None = None
    last_service_date: dt.date | None = None
    next_due_date: dt.date | None = None
    is_active: bool = True


class ServicePriceDTO(RemoteEntity):
    service_type: str
    name: str
    description: str | None = None
    price: Decimal = Decimal("0.00")
    duration_minutes: int = 45
    display_order: int = 0
    is_built_in: bool = True
    is_active: bool = True


# ── Entidades compuestas ─────────────────────────────

class AppointmentHorseDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    appointment_id: str
    horse_id: str
    service_type: str
    price: Decimal = Decimal("0.00")
    notes: str | None = None


class AppointmentDTO(RemoteEntity):
    client_id: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time | None = None
    duration_minutes: int = 45
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    address: str | None = None
    notes: str | None = None
    total_price: Decimal = Decimal("0.00")
    reminder_sent: bool = False
    confirmation_received: bool = False
    completed_at: dt.datetime | None = None
    cancelled_at: dt.datetime | None = None
    cancellation_reason: str | None = None


class InvoiceItemDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    invoice_id: str
    horse_name: str
    service_type: str
    description: str | None = None
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


class InvoiceDTO(RemoteEntity):
    client_id: str
    appointment_id: str | None = None
    invoice_number: str
    invoice_date: dt.date
    due_date: dt.date
    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    status: InvoiceStatus = InvoiceStatus.DRAFT
    notes: str | None = None
    payment_method: str | None = None
    paid_at: dt.datetime | None = None
    sent_at: dt.datetime | None = None
