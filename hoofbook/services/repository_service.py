"""
Repositorios locales: el único camino de escritura de la UI.

Cada mutación sigue la misma secuencia:
1. Escribir la fila local con sync_status PENDING_*
2. Encolar la mutación con un snapshot JSON de la entidad
3. Disparar un sync inmediato (no bloquea)

Las lecturas nunca esperan a la red: siempre leen la base local.
"""

import logging
import uuid
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hoofbook.core.exceptions import LocalEntityMissing, NotAuthenticated
from hoofbook.database import Base, transaction, utcnow
from hoofbook.models import EntitySyncStatus, EntityType, Horse, ServicePrice, SyncOperation
from hoofbook.schemas.remote import HorseDTO, RemoteEntity, ServicePriceDTO
from hoofbook.services.sync_queue_service import MutationQueue

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Base)


class LocalRepository(Generic[M]):
    entity_type: EntityType
    model: type[M]
    schema: type[RemoteEntity]

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: MutationQueue,
        auth,
        trigger_sync: Callable[[], object] | None = None,
    ):
        self._session_factory = session_factory
        self._queue = queue
        self._auth = auth
        self._trigger_sync = trigger_sync

    # ── Lecturas ─────────────────────────────────────

    async def get(self, entity_id: str) -> M | None:
        async with self._session_factory() as session:
            return await session.get(self.model, entity_id)

    async def list_all(self) -> list[M]:
        user_id = self._require_user()
        async with self._session_factory() as session:
            result = await session.execute(
                select(self.model)
                .where(self.model.user_id == user_id)
                .order_by(self.model.created_at.asc())
            )
            return list(result.scalars().all())

    # ── Mutaciones ───────────────────────────────────

    async def create(self, values: dict[str, Any]) -> M:
        user_id = self._require_user()
        values = dict(values)
        children = self._pop_children(values)
        now = utcnow()

        async with transaction(self._session_factory) as session:
            entity = self.model(
                id=values.pop("id", None) or str(uuid.uuid4()),
                user_id=user_id,
                created_at=now,
                updated_at=now,
                sync_status=EntitySyncStatus.PENDING_CREATE,
                **values,
            )
            session.add(entity)
            self._set_children(entity, children)
            await session.flush()
            payload = self._payload(entity)

        await self._record(entity.id, SyncOperation.CREATE, payload)
        return entity

    async def update(self, entity_id: str, changes: dict[str, Any]) -> M:
        changes = dict(changes)
        children = self._pop_children(changes)

        async with transaction(self._session_factory) as session:
            entity = await self._load(session, entity_id)
            for field, value in changes.items():
                setattr(entity, field, value)
            if children is not None:
                await self._replace_children(session, entity, children)
            self._mark_updated(entity)
            await session.flush()
            payload = self._payload(entity)

        await self._record(entity.id, SyncOperation.UPDATE, payload)
        return entity

    async def delete(self, entity_id: str) -> None:
        async with transaction(self._session_factory) as session:
            entity = await self._load(session, entity_id)
            payload = self._payload(entity)
            await session.delete(entity)

        await self._record(entity_id, SyncOperation.DELETE, payload)

    # ── Helpers ──────────────────────────────────────

    def _require_user(self) -> str:
        user_id = self._auth.get_user_id()
        if not user_id:
            raise NotAuthenticated()
        return user_id

    async def _load(self, session: AsyncSession, entity_id: str) -> M:
        entity = await session.get(self.model, entity_id)
        if entity is None:
            raise LocalEntityMissing(self.entity_type.value, entity_id)
        return entity

    @staticmethod
    def _mark_updated(entity: Any) -> None:
        entity.updated_at = utcnow()
        # Un CREATE sin confirmar sigue siendo CREATE para el backend
        if entity.sync_status == EntitySyncStatus.SYNCED:
            entity.sync_status = EntitySyncStatus.PENDING_UPDATE

    def _payload(self, entity: M) -> dict:
        return self.schema.model_validate(entity).model_dump(mode="json")

    async def _record(self, entity_id: str, operation: SyncOperation, payload: dict) -> None:
        await self._queue.enqueue(self.entity_type, entity_id, operation, payload)
        logger.debug(f"{operation.value} {self.entity_type.value}:{entity_id} encolado")
        if self._trigger_sync is not None:
            self._trigger_sync()

    # Entidades compuestas: se sobreescriben en los repositorios con hijas
    def _pop_children(self, values: dict[str, Any]) -> list[dict] | None:
        return None

    def _set_children(self, entity: M, children: list[dict] | None) -> None:
        return None

    async def _replace_children(self, session: AsyncSession, entity: M, children: list[dict]) -> None:
        return None


class CompositeRepository(LocalRepository[M]):
    """Entidad padre con filas hijas que viajan dentro del mismo payload."""

    children_attr: str
    child_model: type[Base]
    child_schema: type[BaseModel]

    def _pop_children(self, values: dict[str, Any]) -> list[dict] | None:
        return values.pop(self.children_attr, None)

    def _set_children(self, entity: M, children: list[dict] | None) -> None:
        setattr(entity, self.children_attr, [self._build_child(entity, c) for c in children or []])

    async def _replace_children(self, session: AsyncSession, entity: M, children: list[dict]) -> None:
        collection = getattr(entity, self.children_attr)
        collection.clear()
        await session.flush()
        collection.extend(self._build_child(entity, c) for c in children)

    def _build_child(self, entity: M, values: dict) -> Base:
        raise NotImplementedError

    def _payload(self, entity: M) -> dict:
        payload = super()._payload(entity)
        payload[self.children_attr] = [
            self.child_schema.model_validate(child).model_dump(mode="json")
            for child in getattr(entity, self.children_attr)
        ]
        return payload


# ── Entidades simples ────────────────────────────────

class HorseRepository(LocalRepository[Horse]):
    entity_type = EntityType.HORSE
    model = Horse
    schema = HorseDTO

    async def list_for_client(self, client_id: str) -> list[Horse]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Horse).where(Horse.client_id == client_id).order_by(Horse.name)
            )
            return list(result.scalars().all())


class ServicePriceRepository(LocalRepository[ServicePrice]):
    entity_type = EntityType.SERVICE_PRICE
    model = ServicePrice
    schema = ServicePriceDTO
