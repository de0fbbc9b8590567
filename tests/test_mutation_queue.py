"""
Tests de la cola de mutaciones: coalescing, orden del batch, estados
y barrido de retención.
"""

from datetime import timedelta

import pytest

from hoofbook.models import QueueStatus, SyncOperation
from hoofbook.services.sync_queue_service import MutationQueue
from tests.conftest import BASE_TIME


# ── Coalescing ───────────────────────────────────────

@pytest.mark.asyncio
async def test_create_then_update_keeps_single_create_with_new_payload(queue: MutationQueue):
    created = await queue.enqueue("client", "c1", SyncOperation.CREATE, {"name": "v1"})
    updated = await queue.enqueue("client", "c1", SyncOperation.UPDATE, {"name": "v2"})

    entries = await queue.get_entries_for_entity("client", "c1")
    assert len(entries) == 1
    assert entries[0].id == created.id == updated.id
    assert entries[0].operation == SyncOperation.CREATE
    assert entries[0].payload == {"name": "v2"}
    assert entries[0].updated_at > entries[0].created_at


@pytest.mark.asyncio
async def test_create_then_delete_cancels_out(queue: MutationQueue):
    await queue.enqueue("client", "c1", SyncOperation.CREATE, {"name": "v1"})
    result = await queue.enqueue("client", "c1", SyncOperation.DELETE, {})

    assert result is None
    assert await queue.get_entries_for_entity("client", "c1") == []
    assert await queue.get_pending_count() == 0


@pytest.mark.asyncio
async def test_update_then_update_keeps_only_latest(queue: MutationQueue):
    first = await queue.enqueue("horse", "h1", SyncOperation.UPDATE, {"name": "a"})
    second = await queue.enqueue("horse", "h1", SyncOperation.UPDATE, {"name": "b"})

    entries = await queue.get_entries_for_entity("horse", "h1")
    assert [e.id for e in entries] == [second.id]
    assert second.id != first.id
    assert entries[0].payload == {"name": "b"}


@pytest.mark.asyncio
async def test_update_then_delete_keeps_both(queue: MutationQueue):
    await queue.enqueue("horse", "h1", SyncOperation.UPDATE, {"name": "a"})
    await queue.enqueue("horse", "h1", SyncOperation.DELETE, {})

    entries = await queue.get_entries_for_entity("horse", "h1")
    assert [e.operation for e in entries] == [SyncOperation.UPDATE, SyncOperation.DELETE]


@pytest.mark.asyncio
async def test_update_coalesces_into_failed_create(queue: MutationQueue):
    created = await queue.enqueue("client", "c1", SyncOperation.CREATE, {"name": "v1"})
    await queue.mark_failed(created.id, "timeout")

    await queue.enqueue("client", "c1", SyncOperation.UPDATE, {"name": "v2"})

    entries = await queue.get_entries_for_entity("client", "c1")
    assert len(entries) == 1
    assert entries[0].operation == SyncOperation.CREATE
    assert entries[0].payload == {"name": "v2"}


@pytest.mark.asyncio
async def test_coalescing_is_per_entity(queue: MutationQueue):
    await queue.enqueue("client", "c1", SyncOperation.CREATE, {})
    await queue.enqueue("horse", "c1", SyncOperation.DELETE, {})
    await queue.enqueue("client", "c2", SyncOperation.DELETE, {})

    assert await queue.get_pending_count() == 3


# ── Batch ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_pending_operations_ordered_by_priority_then_insertion(queue: MutationQueue):
    await queue.enqueue("client", "d1", SyncOperation.DELETE, {})
    await queue.enqueue("client", "c1", SyncOperation.CREATE, {})
    await queue.enqueue("client", "u1", SyncOperation.UPDATE, {})
    await queue.enqueue("client", "c2", SyncOperation.CREATE, {})
    await queue.enqueue("client", "u2", SyncOperation.UPDATE, {})

    entries = await queue.get_pending_operations()

    assert [e.entity_id for e in entries] == ["u1", "u2", "c1", "c2", "d1"]
    assert [e.priority for e in entries] == [2, 2, 1, 1, 0]


@pytest.mark.asyncio
async def test_pending_operations_respects_batch_limit(session_factory, clock):
    queue = MutationQueue(session_factory, batch_limit=50, clock=clock)
    for i in range(60):
        await queue.enqueue("client", f"c{i}", SyncOperation.CREATE, {})

    assert len(await queue.get_pending_operations()) == 50
    assert len(await queue.get_pending_operations(limit=10)) == 10
    assert await queue.get_pending_count() == 60


@pytest.mark.asyncio
async def test_failed_entries_stay_eligible(queue: MutationQueue):
    entry = await queue.enqueue("client", "c1", SyncOperation.CREATE, {})

    await queue.mark_failed(entry.id, "HTTP 500")
    await queue.mark_failed(entry.id, "HTTP 502")

    [pending] = await queue.get_pending_operations()
    assert pending.id == entry.id
    assert pending.status == QueueStatus.FAILED
    assert pending.retry_count == 2
    assert pending.error_message == "HTTP 502"
    assert await queue.get_pending_count() == 1


@pytest.mark.asyncio
async def test_completed_entries_are_not_pending(queue: MutationQueue):
    entry = await queue.enqueue("client", "c1", SyncOperation.CREATE, {})
    await queue.mark_completed(entry.id)

    assert await queue.get_pending_operations() == []
    assert await queue.get_pending_count() == 0
    assert await queue.has_active("client", "c1") is False


@pytest.mark.asyncio
async def test_has_pending_delete(queue: MutationQueue):
    await queue.enqueue("horse", "h1", SyncOperation.DELETE, {})

    assert await queue.has_pending_delete("horse", "h1") is True
    assert await queue.has_pending_delete("horse", "h2") is False


# ── Retención ────────────────────────────────────────

@pytest.mark.asyncio
async def test_retention_sweep_removes_completed_older_than_seven_days(queue: MutationQueue, clock):
    clock.now = BASE_TIME - timedelta(days=8)
    old = await queue.enqueue("client", "old", SyncOperation.CREATE, {})
    await queue.mark_completed(old.id)

    clock.now = BASE_TIME - timedelta(days=6)
    recent = await queue.enqueue("client", "recent", SyncOperation.CREATE, {})
    await queue.mark_completed(recent.id)

    pending = await queue.enqueue("client", "pending", SyncOperation.UPDATE, {})

    clock.now = BASE_TIME
    deleted = await queue.delete_completed()

    assert deleted == 1
    assert await queue.get(old.id) is None
    assert await queue.get(recent.id) is not None
    assert await queue.get(pending.id) is not None


@pytest.mark.asyncio
async def test_retention_sweep_removes_completed_deletes_at_any_age(queue: MutationQueue, clock):
    entry = await queue.enqueue("horse", "h1", SyncOperation.DELETE, {})
    await queue.mark_completed(entry.id)

    assert await queue.delete_completed() == 1
    assert await queue.get(entry.id) is None


# ── Contador observable ──────────────────────────────

@pytest.mark.asyncio
async def test_observe_pending_count(queue: MutationQueue):
    seen: list[int] = []
    unsubscribe = queue.observe_pending_count(seen.append)

    entry = await queue.enqueue("client", "c1", SyncOperation.CREATE, {})
    await queue.enqueue("client", "c2", SyncOperation.CREATE, {})
    await queue.delete(entry.id)
    await queue.refresh_pending_count()
    unsubscribe()
    await queue.clear()

    assert seen == [0, 1, 2, 1]


@pytest.mark.asyncio
async def test_clear_empties_queue(queue: MutationQueue):
    await queue.enqueue("client", "c1", SyncOperation.CREATE, {})
    await queue.enqueue("horse", "h1", SyncOperation.UPDATE, {})

    assert await queue.clear() == 2
    assert await queue.get_pending_count() == 0
