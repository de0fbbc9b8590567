"""
Handlers de sincronización por tipo de entidad.

Cada handler sabe:
- cargar la entidad local y convertirla al DTO remoto (push)
- convertir un DTO remoto a columnas locales (pull)
- reemplazar las filas hijas de una entidad compuesta
- verificar que el padre (cliente) exista antes de insertar una hija

El orquestador despacha por entity_type a través de HandlerRegistry, así
que agregar una entidad nueva es registrar un handler más.
"""

import logging
from typing import Any

from pydantic import BaseModel
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from hoofbook.core.exceptions import UnsupportedEntityType
from hoofbook.database import Base
from hoofbook.models import (
    Appointment,
    AppointmentHorse,
    Client,
    EntitySyncStatus,
    EntityType,
    Horse,
    Invoice,
    InvoiceItem,
    ServicePrice,
)
from hoofbook.services.remote_service import CompositeRemoteCollection, RemoteCollection

logger = logging.getLogger(__name__)


class EntitySyncHandler:
    """Handler para una entidad plana (sin filas hijas)."""

    def __init__(
        self,
        entity_type: EntityType,
        model: type[Base],
        remote: RemoteCollection,
        parent_model: type[Base] | None = None,
        parent_field: str | None = None,
    ):
        self.entity_type = entity_type
        self.model = model
        self.remote = remote
        self.parent_model = parent_model
        self.parent_field = parent_field

    @property
    def is_composite(self) -> bool:
        return False

    # ── Push ─────────────────────────────────────────

    async def load_local(self, session: AsyncSession, entity_id: str) -> Any | None:
        return await session.get(self.model, entity_id)

    def to_remote(self, entity: Any) -> BaseModel:
        return self.remote.schema.model_validate(entity)

    def children_to_remote(self, entity: Any) -> list[BaseModel] | None:
        return None

    async def set_sync_status(
        self,
        session: AsyncSession,
        entity_id: str,
        status: EntitySyncStatus,
    ) -> None:
        await session.execute(
            update(self.model)
            .where(self.model.id == entity_id)
            .values(sync_status=status)
        )

    # ── Pull ─────────────────────────────────────────

    def parse_remote(self, row: Any) -> BaseModel:
        """Valida una fila remota. Lanza ValidationError si viene malformada."""
        return self.remote.schema.model_validate(row)

    def to_local_values(self, dto: BaseModel) -> dict[str, Any]:
        values = dto.model_dump()
        values["sync_status"] = EntitySyncStatus.SYNCED
        return values

    async def parent_exists(self, session: AsyncSession, dto: BaseModel) -> bool:
        if self.parent_model is None:
            return True
        parent_id = getattr(dto, self.parent_field)
        return await session.get(self.parent_model, parent_id) is not None

    async def fetch_remote_children(self, parent_id: str) -> list[BaseModel] | None:
        return None

    async def replace_children(
        self,
        session: AsyncSession,
        parent: Any,
        children: list[BaseModel] | None,
    ) -> None:
        return None


class CompositeSyncHandler(EntitySyncHandler):
    """Handler para entidad padre + filas hijas (reemplazo completo)."""

    def __init__(
        self,
        entity_type: EntityType,
        model: type[Base],
        remote: CompositeRemoteCollection,
        child_model: type[Base],
        children_attr: str,
        parent_model: type[Base] | None = None,
        parent_field: str | None = None,
    ):
        super().__init__(entity_type, model, remote, parent_model, parent_field)
        self.child_model = child_model
        self.children_attr = children_attr

    @property
    def is_composite(self) -> bool:
        return True

    def children_to_remote(self, entity: Any) -> list[BaseModel]:
        return [
            self.remote.child_schema.model_validate(child)
            for child in getattr(entity, self.children_attr)
        ]

    async def fetch_remote_children(self, parent_id: str) -> list[BaseModel]:
        return await self.remote.fetch_children(parent_id)

    async def replace_children(
        self,
        session: AsyncSession,
        parent: Any,
        children: list[BaseModel] | None,
    ) -> None:
        collection = getattr(parent, self.children_attr)
        # Borrar antes de insertar: las hijas pueden reutilizar la misma PK
        collection.clear()
        await session.flush()
        collection.extend(self.child_model(**child.model_dump()) for child in children or [])


class HandlerRegistry:
    """Mapa entity_type → handler. El orden de registro es el orden del pull."""

    def __init__(self):
        self._handlers: dict[str, EntitySyncHandler] = {}

    def register(self, handler: EntitySyncHandler) -> None:
        self._handlers[handler.entity_type.value] = handler

    def get(self, entity_type: str) -> EntitySyncHandler:
        handler = self._handlers.get(entity_type)
        if handler is None:
            raise UnsupportedEntityType(entity_type)
        return handler

    def pull_order(self) -> list[EntitySyncHandler]:
        return list(self._handlers.values())


def build_default_registry(remotes: dict[EntityType, RemoteCollection]) -> HandlerRegistry:
    """
    Registra los handlers en orden de dependencia: primero clientes, luego
    las entidades que referencian a un cliente.
    """
    registry = HandlerRegistry()
    registry.register(EntitySyncHandler(EntityType.CLIENT, Client, remotes[EntityType.CLIENT]))
    registry.register(EntitySyncHandler(
        EntityType.HORSE, Horse, remotes[EntityType.HORSE],
        parent_model=Client, parent_field="client_id",
    ))
    registry.register(EntitySyncHandler(
        EntityType.SERVICE_PRICE, ServicePrice, remotes[EntityType.SERVICE_PRICE],
    ))
    registry.register(CompositeSyncHandler(
        EntityType.APPOINTMENT, Appointment, remotes[EntityType.APPOINTMENT],
        child_model=AppointmentHorse, children_attr="horses",
        parent_model=Client, parent_field="client_id",
    ))
    registry.register(CompositeSyncHandler(
        EntityType.INVOICE, Invoice, remotes[EntityType.INVOICE],
        child_model=InvoiceItem, children_attr="items",
        parent_model=Client, parent_field="client_id",
    ))
    return registry
