"""
Tests de los repositorios locales: escritura PENDING_*, encolado y
disparo del sync inmediato.
"""

from datetime import date, time
from decimal import Decimal

import pytest

from hoofbook.core.exceptions import LocalEntityMissing, NotAuthenticated
from hoofbook.models import EntitySyncStatus, Horse, SyncOperation
from hoofbook.services.appointment_service import AppointmentRepository
from hoofbook.services.client_service import ClientRepository
from hoofbook.services.invoice_service import InvoiceRepository
from hoofbook.services.repository_service import HorseRepository, ServicePriceRepository
from tests.conftest import FakeAuth, insert_client


class TriggerCounter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return "job"


@pytest.fixture
def trigger() -> TriggerCounter:
    return TriggerCounter()


@pytest.fixture
def repo_args(session_factory, queue, auth, trigger):
    return (session_factory, queue, auth, trigger)


@pytest.mark.asyncio
async def test_create_writes_pending_row_and_enqueues(repo_args, queue, trigger):
    clients = ClientRepository(*repo_args)

    client = await clients.create({"name": "Ana", "first_name": "Ana", "phone": "555"})

    assert client.sync_status == EntitySyncStatus.PENDING_CREATE
    [entry] = await queue.get_entries_for_entity("client", client.id)
    assert entry.operation == SyncOperation.CREATE
    assert entry.payload["phone"] == "555"
    assert entry.payload["reminder_preference"] == "SMS"
    assert trigger.calls == 1


@pytest.mark.asyncio
async def test_update_of_synced_entity_becomes_pending_update(repo_args, queue, session_factory):
    await insert_client(session_factory, "c1")
    clients = ClientRepository(*repo_args)

    client = await clients.update("c1", {"phone": "999"})

    assert client.sync_status == EntitySyncStatus.PENDING_UPDATE
    [entry] = await queue.get_entries_for_entity("client", "c1")
    assert entry.operation == SyncOperation.UPDATE
    assert entry.payload["phone"] == "999"


@pytest.mark.asyncio
async def test_update_of_unsynced_create_stays_pending_create(repo_args, queue):
    clients = ClientRepository(*repo_args)
    client = await clients.create({"name": "Ana", "first_name": "Ana", "phone": "555"})

    updated = await clients.update(client.id, {"phone": "999"})

    assert updated.sync_status == EntitySyncStatus.PENDING_CREATE
    [entry] = await queue.get_entries_for_entity("client", client.id)
    assert entry.operation == SyncOperation.CREATE
    assert entry.payload["phone"] == "999"


@pytest.mark.asyncio
async def test_delete_removes_row_and_enqueues_delete(repo_args, queue, session_factory):
    await insert_client(session_factory, "c1")
    clients = ClientRepository(*repo_args)

    await clients.delete("c1")

    assert await clients.get("c1") is None
    [entry] = await queue.get_entries_for_entity("client", "c1")
    assert entry.operation == SyncOperation.DELETE


@pytest.mark.asyncio
async def test_missing_entity_raises(repo_args):
    with pytest.raises(LocalEntityMissing):
        await ClientRepository(*repo_args).update("nope", {"phone": "1"})


@pytest.mark.asyncio
async def test_writes_require_session(session_factory, queue, trigger):
    clients = ClientRepository(session_factory, queue, FakeAuth(None), trigger)

    with pytest.raises(NotAuthenticated):
        await clients.create({"name": "Ana", "first_name": "Ana", "phone": "555"})
    assert trigger.calls == 0


@pytest.mark.asyncio
async def test_archive_client_cascades_to_horses(repo_args, queue, session_factory, trigger):
    await insert_client(session_factory, "c1")
    horses = HorseRepository(*repo_args)
    horse = await horses.create({"client_id": "c1", "name": "Relámpago"})
    clients = ClientRepository(*repo_args)

    archived = await clients.archive("c1")

    assert archived.is_active is False
    [stored_horse] = await horses.list_for_client("c1")
    assert stored_horse.is_active is False
    [client_entry] = await queue.get_entries_for_entity("client", "c1")
    assert client_entry.operation == SyncOperation.UPDATE
    assert client_entry.payload["is_active"] is False
    [horse_entry] = await queue.get_entries_for_entity("horse", horse.id)
    # El CREATE del caballo sigue sin confirmar: absorbe el UPDATE
    assert horse_entry.operation == SyncOperation.CREATE
    assert horse_entry.payload["is_active"] is False

    restored = await clients.restore("c1")

    assert restored.is_active is True
    assert trigger.calls == 3


@pytest.mark.asyncio
async def test_deleting_client_removes_its_horses_locally(repo_args, session_factory):
    await insert_client(session_factory, "c1")
    horses = HorseRepository(*repo_args)
    horse = await horses.create({"client_id": "c1", "name": "Relámpago"})

    await ClientRepository(*repo_args).delete("c1")

    async with session_factory() as session:
        assert await session.get(Horse, horse.id) is None


@pytest.mark.asyncio
async def test_service_price_create(repo_args, queue):
    prices = ServicePriceRepository(*repo_args)

    price = await prices.create({
        "service_type": "TRIM", "name": "Recorte", "price": Decimal("45.00"),
    })

    [entry] = await queue.get_entries_for_entity("service_price", price.id)
    assert entry.payload["price"] == "45.00"
    assert [p.id for p in await prices.list_all()] == [price.id]


@pytest.mark.asyncio
async def test_appointment_payload_includes_horses(repo_args, queue, session_factory):
    await insert_client(session_factory, "c1")
    appointments = AppointmentRepository(*repo_args)

    appointment = await appointments.create({
        "client_id": "c1",
        "date": date(2026, 3, 2),
        "start_time": time(9, 0),
        "horses": [
            {"horse_id": "h1", "service_type": "TRIM", "price": Decimal("45.00")},
            {"horse_id": "h2", "service_type": "FULL_SET", "price": Decimal("160.00")},
        ],
    })

    [entry] = await queue.get_entries_for_entity("appointment", appointment.id)
    assert entry.operation == SyncOperation.CREATE
    assert sorted(h["horse_id"] for h in entry.payload["horses"]) == ["h1", "h2"]
    assert all(h["appointment_id"] == appointment.id for h in entry.payload["horses"])


@pytest.mark.asyncio
async def test_appointment_update_replaces_horses(repo_args, session_factory):
    await insert_client(session_factory, "c1")
    appointments = AppointmentRepository(*repo_args)
    appointment = await appointments.create({
        "client_id": "c1",
        "date": date(2026, 3, 2),
        "start_time": time(9, 0),
        "horses": [{"horse_id": "h1", "service_type": "TRIM"}],
    })

    await appointments.update(appointment.id, {
        "horses": [
            {"horse_id": "h1", "service_type": "FULL_SET"},
            {"horse_id": "h3", "service_type": "TRIM"},
        ],
    })

    stored = await appointments.get(appointment.id)
    assert sorted((h.horse_id, h.service_type) for h in stored.horses) == [
        ("h1", "FULL_SET"),
        ("h3", "TRIM"),
    ]


@pytest.mark.asyncio
async def test_invoice_items_get_ids_and_totals(repo_args, queue, session_factory):
    await insert_client(session_factory, "c1")
    invoices = InvoiceRepository(*repo_args)

    invoice = await invoices.create({
        "client_id": "c1",
        "invoice_number": "INV-0001",
        "invoice_date": date(2026, 3, 2),
        "due_date": date(2026, 4, 1),
        "items": [
            {"horse_name": "Relámpago", "service_type": "TRIM", "quantity": 2, "unit_price": "45.00"},
        ],
    })

    [item] = invoice.items
    assert item.id
    assert item.total == Decimal("90.00")
    [entry] = await queue.get_entries_for_entity("invoice", invoice.id)
    assert entry.payload["items"][0]["total"] == "90.00"
