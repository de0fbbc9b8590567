"""
Modelos SQLAlchemy — exportar todos para que Alembic los detecte.
"""

from hoofbook.models.sync_queue import (
    EntitySyncStatus,
    EntityType,
    QueueStatus,
    SyncOperation,
    SyncQueueEntry,
)
from hoofbook.models.client import Client
from hoofbook.models.horse import Horse
from hoofbook.models.service_price import ServicePrice
from hoofbook.models.appointment import Appointment, AppointmentHorse, AppointmentStatus
from hoofbook.models.invoice import Invoice, InvoiceItem, InvoiceStatus

__all__ = [
    "EntitySyncStatus",
    "EntityType",
    "QueueStatus",
    "SyncOperation",
    "SyncQueueEntry",
    "Client",
    "Horse",
    "ServicePrice",
    "Appointment",
    "AppointmentHorse",
    "AppointmentStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
]
