"""
Repositorio de clientes.

Archivar un cliente lo oculta de las listas sin borrarlo: el cliente y
todos sus caballos pasan a is_active=False y cada cambio se encola como
UPDATE. Restaurar revierte lo mismo.
"""

import logging

from sqlalchemy import select

from hoofbook.database import transaction
from hoofbook.models import Client, EntityType, Horse, SyncOperation
from hoofbook.schemas.remote import ClientDTO, HorseDTO
from hoofbook.services.repository_service import LocalRepository

logger = logging.getLogger(__name__)


class ClientRepository(LocalRepository[Client]):
    entity_type = EntityType.CLIENT
    model = Client
    schema = ClientDTO

    async def archive(self, client_id: str) -> Client:
        return await self._set_active(client_id, False)

    async def restore(self, client_id: str) -> Client:
        return await self._set_active(client_id, True)

    async def _set_active(self, client_id: str, active: bool) -> Client:
        async with transaction(self._session_factory) as session:
            client = await self._load(session, client_id)
            client.is_active = active
            self._mark_updated(client)

            result = await session.execute(select(Horse).where(Horse.client_id == client_id))
            horses = list(result.scalars().all())
            for horse in horses:
                horse.is_active = active
                self._mark_updated(horse)

            await session.flush()
            client_payload = self._payload(client)
            horse_payloads = [
                (horse.id, HorseDTO.model_validate(horse).model_dump(mode="json"))
                for horse in horses
            ]

        await self._queue.enqueue(EntityType.CLIENT, client.id, SyncOperation.UPDATE, client_payload)
        for horse_id, payload in horse_payloads:
            await self._queue.enqueue(EntityType.HORSE, horse_id, SyncOperation.UPDATE, payload)

        logger.info(
            f"Cliente {client_id} {'restaurado' if active else 'archivado'} "
            f"junto con {len(horse_payloads)} caballos"
        )
        if self._trigger_sync is not None:
            self._trigger_sync()
        return client
