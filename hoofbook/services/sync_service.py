"""
Orquestador de sincronización: un ciclo completo push → pull.

Flujo:
1. Requiere usuario autenticado (NotAuthenticated si no hay sesión)
2. Push: toma hasta SYNC_BATCH_LIMIT entradas activas de la cola y las
   despacha al handler de su entity_type
   a. éxito → COMPLETED + entidad SYNCED + borrar entrada (una transacción)
   b. error del ítem → mark_failed, la entrada queda para el próximo ciclo
   c. NetworkUnavailable → se corta el ciclo (reintentable)
3. Pull: por tipo en orden de dependencia (clientes primero)
   a. sin copia local → insertar
   b. local SYNCED → sobrescribir solo si el remoto es estrictamente
      más nuevo (last-write-wins)
   c. local PENDING_* → omitir, los cambios locales ganan
   d. hija sin padre local → omitir y continuar
4. Retorna SyncResult con los contadores agregados

Nunca corren dos ciclos a la vez para el mismo usuario.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hoofbook.core.exceptions import (
    LocalEntityMissing,
    NetworkUnavailable,
    NotAuthenticated,
    PullSkipped,
    RemoteRejected,
)
from hoofbook.database import as_utc, transaction, utcnow
from hoofbook.models.sync_queue import (
    EntitySyncStatus,
    QueueStatus,
    SyncOperation,
    SyncQueueEntry,
)
from hoofbook.schemas.sync import SyncResult
from hoofbook.services.sync_handlers import EntitySyncHandler, HandlerRegistry
from hoofbook.services.sync_queue_service import MutationQueue

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    def get_user_id(self) -> str | None: ...


class SyncOrchestrator:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: MutationQueue,
        registry: HandlerRegistry,
        auth: AuthProvider,
        batch_limit: int = 50,
        max_item_retries: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._queue = queue
        self._registry = registry
        self._auth = auth
        self._batch_limit = batch_limit
        self._max_item_retries = max_item_retries
        self._clock = clock
        self._user_locks: dict[str, asyncio.Lock] = {}

        self.last_result: SyncResult | None = None
        self.last_sync_at: datetime | None = None

    # ── Ciclo completo ───────────────────────────────

    async def perform_sync(self) -> SyncResult:
        user_id = self._auth.get_user_id()
        if not user_id:
            raise NotAuthenticated()

        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        if lock.locked():
            logger.info(f"Sync en curso para {user_id}, esperando a que termine")

        async with lock:
            logger.info(f"Iniciando sync para usuario {user_id}")

            pushed, failed = await self._push_local_changes()
            pulled, skipped = await self._pull_remote_changes(user_id)

            result = SyncResult(
                pushed_count=pushed,
                pulled_count=pulled,
                failed_count=failed,
                skipped_count=skipped,
            )
            self.last_result = result
            self.last_sync_at = self._clock()

        logger.info(
            f"Sync completado: pushed={pushed}, pulled={pulled}, "
            f"failed={failed}, skipped={skipped}"
        )
        return result

    def is_syncing(self, user_id: str) -> bool:
        lock = self._user_locks.get(user_id)
        return lock is not None and lock.locked()

    # ── Push ─────────────────────────────────────────

    async def _push_local_changes(self) -> tuple[int, int]:
        entries = await self._queue.get_pending_operations(self._batch_limit)
        pushed = 0
        failed = 0

        if entries:
            logger.info(f"Push de {len(entries)} cambios locales")

        try:
            for entry in entries:
                try:
                    handler = self._registry.get(entry.entity_type)
                    await self._push_entry(handler, entry)
                except NetworkUnavailable:
                    # Sin red no tiene sentido seguir con el batch; la entrada
                    # queda intacta y se reintenta con el ciclo
                    logger.warning(f"Push interrumpido por falta de red en entrada {entry.id}")
                    raise
                except LocalEntityMissing as exc:
                    failed += 1
                    await self._handle_missing_entity(entry, exc)
                except Exception as exc:
                    failed += 1
                    logger.warning(
                        f"Entrada {entry.id} ({entry.operation.value} {entry.entity_type}:"
                        f"{entry.entity_id}) falló, intento {entry.retry_count + 1}: {exc}"
                    )
                    await self._queue.mark_failed(entry.id, str(exc) or type(exc).__name__)
                else:
                    await self._apply_push_success(handler, entry)
                    pushed += 1
        finally:
            await self._queue.refresh_pending_count()

        return pushed, failed

    async def _push_entry(self, handler: EntitySyncHandler, entry: SyncQueueEntry) -> None:
        if entry.operation == SyncOperation.DELETE:
            await handler.remote.delete(entry.entity_id)
            return

        async with self._session_factory() as session:
            entity = await handler.load_local(session, entry.entity_id)
            if entity is None:
                raise LocalEntityMissing(entry.entity_type, entry.entity_id)
            dto = handler.to_remote(entity)
            children = handler.children_to_remote(entity)

        if entry.operation == SyncOperation.CREATE:
            await handler.remote.create(dto, children)
        else:
            await handler.remote.update(dto, children)

    async def _apply_push_success(self, handler: EntitySyncHandler, entry: SyncQueueEntry) -> None:
        """Marca completada, pone la entidad en SYNCED y borra la entrada."""
        async with transaction(self._session_factory) as session:
            current = await self._queue.get(entry.id, session)

            if (
                current is not None
                and entry.operation == SyncOperation.CREATE
                and current.updated_at != entry.updated_at
            ):
                # Se coalesció un UPDATE mientras se enviaba el CREATE: el
                # remoto ya tiene la entidad, lo que queda es un UPDATE
                current.operation = SyncOperation.UPDATE
                current.priority = SyncOperation.UPDATE.priority
                current.status = QueueStatus.PENDING
                await handler.set_sync_status(
                    session, entry.entity_id, EntitySyncStatus.PENDING_UPDATE
                )
                return

            if (
                current is None
                and entry.operation == SyncOperation.CREATE
                and await handler.load_local(session, entry.entity_id) is None
            ):
                # Se borró localmente mientras se enviaba el CREATE: el
                # coalescing anuló la entrada pero el remoto ya la tiene
                logger.info(
                    f"{entry.entity_type}:{entry.entity_id} borrado durante el push, "
                    f"se encola DELETE"
                )
                await self._queue.append(
                    entry.entity_type, entry.entity_id, SyncOperation.DELETE,
                    {"id": entry.entity_id}, session,
                )
                return

            if current is not None:
                await self._queue.mark_completed(entry.id, session)

            if entry.operation != SyncOperation.DELETE:
                newer_pending = await self._queue.has_active(
                    entry.entity_type, entry.entity_id, exclude_id=entry.id, session=session
                )
                if not newer_pending:
                    await handler.set_sync_status(session, entry.entity_id, EntitySyncStatus.SYNCED)

            if current is not None:
                await self._queue.delete(entry.id, session)

    async def _handle_missing_entity(self, entry: SyncQueueEntry, exc: LocalEntityMissing) -> None:
        # La entidad no va a reaparecer: después de N intentos se descarta
        if entry.retry_count + 1 >= self._max_item_retries:
            logger.warning(
                f"Entrada {entry.id} descartada tras {entry.retry_count + 1} intentos: {exc}"
            )
            await self._queue.delete(entry.id)
        else:
            logger.warning(f"Entrada {entry.id} falló: {exc}")
            await self._queue.mark_failed(entry.id, str(exc))

    # ── Pull ─────────────────────────────────────────

    async def _pull_remote_changes(self, user_id: str) -> tuple[int, int]:
        pulled = 0
        skipped = 0
        for handler in self._registry.pull_order():
            type_pulled, type_skipped = await self._pull_entity_type(handler, user_id)
            pulled += type_pulled
            skipped += type_skipped
        return pulled, skipped

    async def _pull_entity_type(self, handler: EntitySyncHandler, user_id: str) -> tuple[int, int]:
        entity_type = handler.entity_type.value
        try:
            remote_rows = await handler.remote.fetch_all(user_id)
        except RemoteRejected as exc:
            logger.error(f"No se pudo obtener {entity_type} del servidor: {exc}")
            return 0, 0

        logger.debug(f"Recibidos {len(remote_rows)} {entity_type} del servidor")
        pulled = 0
        skipped = 0

        for row in remote_rows:
            row_id = _row_id(row)
            try:
                dto = handler.parse_remote(row)
                if await self._reconcile(handler, dto):
                    pulled += 1
            except PullSkipped as exc:
                skipped += 1
                logger.warning(f"Omitido {entity_type} {row_id}: {exc.reason}")
            except ValidationError as exc:
                # Fila (o hijas) malformada: se omite sin cortar el ciclo
                skipped += 1
                logger.warning(
                    f"Omitido {entity_type} {row_id}: {exc.error_count()} campos inválidos"
                )
            except (RemoteRejected, SQLAlchemyError) as exc:
                skipped += 1
                logger.error(f"Error procesando {entity_type} {row_id}: {exc}")

        return pulled, skipped

    async def _reconcile(self, handler: EntitySyncHandler, dto: BaseModel) -> bool:
        """Aplica un registro remoto con last-write-wins. True si escribió."""
        async with self._session_factory() as session:
            if not await self._should_apply(session, handler, dto):
                return False

        # Las hijas se piden fuera de la transacción de escritura
        children = None
        if handler.is_composite:
            children = await handler.fetch_remote_children(dto.id)

        async with transaction(self._session_factory) as session:
            # Re-verificar: la UI pudo editar la entidad mientras tanto
            if not await self._should_apply(session, handler, dto):
                return False

            values = handler.to_local_values(dto)
            local = await handler.load_local(session, dto.id)
            if local is None:
                local = handler.model(**values)
                session.add(local)
            else:
                for field, value in values.items():
                    setattr(local, field, value)

            if handler.is_composite:
                await handler.replace_children(session, local, children)

        return True

    async def _should_apply(
        self,
        session: AsyncSession,
        handler: EntitySyncHandler,
        dto: Any,
    ) -> bool:
        local = await handler.load_local(session, dto.id)

        if local is not None:
            if local.sync_status != EntitySyncStatus.SYNCED:
                return False
            if as_utc(dto.updated_at) <= as_utc(local.updated_at):
                return False

        if await self._queue.has_pending_delete(handler.entity_type.value, dto.id, session):
            raise PullSkipped("tiene un DELETE local pendiente de push")

        if not await handler.parent_exists(session, dto):
            parent_id = getattr(dto, handler.parent_field)
            raise PullSkipped(f"el padre {parent_id} no existe localmente")

        return True


def _row_id(row: Any) -> str | None:
    if isinstance(row, dict):
        return row.get("id")
    return getattr(row, "id", None)
