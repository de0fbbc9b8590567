"""
Cola local de mutaciones (MutationQueue) con coalescing por entidad.

Reglas de coalescing al encolar, según la última entrada activa de la
misma (entity_type, entity_id):

    CREATE + DELETE → se borra el CREATE y no se inserta nada
                      (la entidad nunca llegó al servidor)
    CREATE + UPDATE → se conserva el CREATE con el payload nuevo
    UPDATE + UPDATE → se inserta el UPDATE nuevo y se borran los anteriores
    resto           → se inserta la operación tal cual

Cada decisión de coalescing es una sola transacción y queda persistida
antes de retornar.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hoofbook.core.observable import Observable
from hoofbook.database import transaction, utcnow
from hoofbook.models.sync_queue import (
    ACTIVE_STATUSES,
    EntityType,
    QueueStatus,
    SyncOperation,
    SyncQueueEntry,
)

logger = logging.getLogger(__name__)


class MutationQueue:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_limit: int = 50,
        retention_days: int = 7,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._batch_limit = batch_limit
        self._retention = timedelta(days=retention_days)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._pending_count: Observable[int] = Observable(0)

    # ── Encolar ──────────────────────────────────────

    async def enqueue(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        operation: SyncOperation | str,
        payload: dict,
    ) -> SyncQueueEntry | None:
        """
        Registra una mutación local aplicando las reglas de coalescing.
        Retorna la entrada que representa el cambio, o None si el cambio
        se anuló (CREATE seguido de DELETE).
        """
        entity_type = EntityType(entity_type).value
        operation = SyncOperation(operation)

        async with self._lock:
            async with transaction(self._session_factory) as session:
                existing = await self._get_latest_for_entity(session, entity_type, entity_id)
                existing_op = existing.operation if existing else None
                now = self._clock()

                if existing_op == SyncOperation.CREATE and operation == SyncOperation.DELETE:
                    await session.delete(existing)
                    entry = None
                    logger.debug(f"Coalescing {entity_type}:{entity_id}: CREATE+DELETE anulados")

                elif existing_op == SyncOperation.CREATE and operation == SyncOperation.UPDATE:
                    existing.payload = payload
                    existing.updated_at = now
                    entry = existing

                elif existing_op == SyncOperation.UPDATE and operation == SyncOperation.UPDATE:
                    entry = self._new_entry(entity_type, entity_id, operation, payload, now)
                    session.add(entry)
                    await session.flush()
                    await session.execute(
                        delete(SyncQueueEntry).where(
                            SyncQueueEntry.entity_type == entity_type,
                            SyncQueueEntry.entity_id == entity_id,
                            SyncQueueEntry.operation == SyncOperation.UPDATE,
                            SyncQueueEntry.status.in_(ACTIVE_STATUSES),
                            SyncQueueEntry.id != entry.id,
                        )
                    )

                else:
                    entry = self._new_entry(entity_type, entity_id, operation, payload, now)
                    session.add(entry)

        await self.refresh_pending_count()
        return entry

    async def append(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        operation: SyncOperation,
        payload: dict,
        session: AsyncSession | None = None,
    ) -> SyncQueueEntry:
        """Inserta una entrada sin coalescing (lo usa el orquestador dentro de su transacción)."""
        async with transaction(self._session_factory, session) as s:
            entry = self._new_entry(
                EntityType(entity_type).value, entity_id, operation, payload, self._clock()
            )
            s.add(entry)
            await s.flush()
        return entry

    def _new_entry(
        self,
        entity_type: str,
        entity_id: str,
        operation: SyncOperation,
        payload: dict,
        now: datetime,
    ) -> SyncQueueEntry:
        return SyncQueueEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            payload=payload,
            priority=operation.priority,
            status=QueueStatus.PENDING,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )

    async def _get_latest_for_entity(
        self,
        session: AsyncSession,
        entity_type: str,
        entity_id: str,
    ) -> SyncQueueEntry | None:
        result = await session.execute(
            select(SyncQueueEntry)
            .where(
                SyncQueueEntry.entity_type == entity_type,
                SyncQueueEntry.entity_id == entity_id,
                SyncQueueEntry.status.in_(ACTIVE_STATUSES),
            )
            .order_by(SyncQueueEntry.created_at.desc(), SyncQueueEntry.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ── Consultas ────────────────────────────────────

    async def get_pending_operations(self, limit: int | None = None) -> list[SyncQueueEntry]:
        """
        Entradas listas para push: PENDING y FAILED (FAILED es reintentable).
        Orden: prioridad descendente y luego orden de inserción.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncQueueEntry)
                .where(SyncQueueEntry.status.in_(ACTIVE_STATUSES))
                .order_by(
                    SyncQueueEntry.priority.desc(),
                    SyncQueueEntry.created_at.asc(),
                    SyncQueueEntry.id.asc(),
                )
                .limit(limit or self._batch_limit)
            )
            return list(result.scalars().all())

    async def get(self, entry_id: int, session: AsyncSession | None = None) -> SyncQueueEntry | None:
        async with transaction(self._session_factory, session) as s:
            return await s.get(SyncQueueEntry, entry_id)

    async def get_entries_for_entity(self, entity_type: str, entity_id: str) -> list[SyncQueueEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncQueueEntry)
                .where(
                    SyncQueueEntry.entity_type == entity_type,
                    SyncQueueEntry.entity_id == entity_id,
                )
                .order_by(SyncQueueEntry.id.asc())
            )
            return list(result.scalars().all())

    async def has_pending_delete(
        self,
        entity_type: str,
        entity_id: str,
        session: AsyncSession | None = None,
    ) -> bool:
        """True si hay un DELETE sin confirmar para la entidad."""
        async with transaction(self._session_factory, session) as s:
            result = await s.execute(
                select(SyncQueueEntry.id).where(
                    SyncQueueEntry.entity_type == entity_type,
                    SyncQueueEntry.entity_id == entity_id,
                    SyncQueueEntry.operation == SyncOperation.DELETE,
                    SyncQueueEntry.status.in_(ACTIVE_STATUSES),
                ).limit(1)
            )
            return result.first() is not None

    async def has_active(
        self,
        entity_type: str,
        entity_id: str,
        exclude_id: int | None = None,
        session: AsyncSession | None = None,
    ) -> bool:
        """True si queda alguna otra mutación activa para la entidad."""
        async with transaction(self._session_factory, session) as s:
            query = select(SyncQueueEntry.id).where(
                SyncQueueEntry.entity_type == entity_type,
                SyncQueueEntry.entity_id == entity_id,
                SyncQueueEntry.status.in_(ACTIVE_STATUSES),
            )
            if exclude_id is not None:
                query = query.where(SyncQueueEntry.id != exclude_id)
            result = await s.execute(query.limit(1))
            return result.first() is not None

    # ── Transiciones de estado ───────────────────────

    async def mark_completed(self, entry_id: int, session: AsyncSession | None = None) -> None:
        """
        Marca la entrada como COMPLETED. El llamador la borra después de
        actualizar el sync_status de la entidad (misma transacción).
        """
        async with transaction(self._session_factory, session) as s:
            await s.execute(
                update(SyncQueueEntry)
                .where(SyncQueueEntry.id == entry_id)
                .values(status=QueueStatus.COMPLETED, updated_at=self._clock())
            )

    async def mark_failed(
        self,
        entry_id: int,
        error: str,
        session: AsyncSession | None = None,
    ) -> None:
        async with transaction(self._session_factory, session) as s:
            await s.execute(
                update(SyncQueueEntry)
                .where(SyncQueueEntry.id == entry_id)
                .values(
                    status=QueueStatus.FAILED,
                    retry_count=SyncQueueEntry.retry_count + 1,
                    error_message=error[:2000],
                    updated_at=self._clock(),
                )
            )

    async def delete(self, entry_id: int, session: AsyncSession | None = None) -> None:
        async with transaction(self._session_factory, session) as s:
            await s.execute(delete(SyncQueueEntry).where(SyncQueueEntry.id == entry_id))

    # ── Limpieza ─────────────────────────────────────

    async def delete_completed(self) -> int:
        """
        Barrido de retención: borra COMPLETED con más de N días.
        Los DELETE completados no se retienen.
        """
        cutoff = self._clock() - self._retention
        async with transaction(self._session_factory) as session:
            result = await session.execute(
                delete(SyncQueueEntry).where(
                    SyncQueueEntry.status == QueueStatus.COMPLETED,
                    or_(
                        SyncQueueEntry.updated_at < cutoff,
                        SyncQueueEntry.operation == SyncOperation.DELETE,
                    ),
                )
            )
            deleted = result.rowcount

        if deleted:
            logger.info(f"Limpieza de cola: {deleted} entradas completadas eliminadas")
        return deleted

    async def clear(self) -> int:
        """Vacía la cola completa (cierre de sesión)."""
        async with transaction(self._session_factory) as session:
            result = await session.execute(delete(SyncQueueEntry))
            deleted = result.rowcount
        await self.refresh_pending_count()
        return deleted

    # ── Contadores para la UI ────────────────────────

    async def get_pending_count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(SyncQueueEntry).where(
                    SyncQueueEntry.status.in_(ACTIVE_STATUSES),
                )
            )
            return result.scalar() or 0

    def observe_pending_count(self, callback: Callable[[int], None]) -> Callable[[], None]:
        return self._pending_count.subscribe(callback)

    async def refresh_pending_count(self) -> int:
        count = await self.get_pending_count()
        self._pending_count.publish(count)
        return count
