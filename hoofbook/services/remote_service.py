"""
Colaboradores remotos por tipo de entidad sobre la API REST (PostgREST).

Contrato común:
    fetch_all(user_id)          → filas JSON del usuario (se validan en el pull)
    create(entity, children)    → upsert idempotente (reintentos seguros)
    update(entity, children)    → PATCH por id
    delete(entity_id)           → DELETE por id (idempotente)
    fetch_children(parent_id)   → solo entidades compuestas

Errores:
    httpx.TransportError / Timeout → NetworkUnavailable (ciclo reintentable)
    status >= 400                  → RemoteRejected (falla solo ese ítem)
"""

import logging
from typing import Callable, Generic, TypeVar

import httpx
from pydantic import BaseModel

from hoofbook.config import Settings
from hoofbook.core.exceptions import NetworkUnavailable, RemoteRejected
from hoofbook.models.sync_queue import EntityType
from hoofbook.schemas.remote import (
    AppointmentDTO,
    AppointmentHorseDTO,
    ClientDTO,
    HorseDTO,
    InvoiceDTO,
    InvoiceItemDTO,
    RemoteEntity,
    ServicePriceDTO,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=RemoteEntity)
C = TypeVar("C", bound=BaseModel)


class BearerAuth(httpx.Auth):
    """Agrega el access token vigente de la sesión a cada request."""

    def __init__(self, token_provider: Callable[[], str | None]):
        self._token_provider = token_provider

    def auth_flow(self, request: httpx.Request):
        token = self._token_provider()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


def create_remote_client(
    settings: Settings,
    token_provider: Callable[[], str | None],
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Cliente HTTP compartido por todas las colecciones remotas."""
    return httpx.AsyncClient(
        base_url=f"{settings.REMOTE_API_URL.rstrip('/')}/rest/v1",
        headers={
            "apikey": settings.REMOTE_API_KEY,
            "Content-Type": "application/json",
        },
        auth=BearerAuth(token_provider),
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
        transport=transport,
    )


class RemoteCollection(Generic[E]):
    """CRUD sobre una tabla remota."""

    def __init__(self, client: httpx.AsyncClient, table: str, schema: type[E]):
        self._client = client
        self.table = table
        self.schema = schema

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkUnavailable(f"Timeout en {method} {path}") from exc
        except httpx.TransportError as exc:
            raise NetworkUnavailable(f"Error de conexión en {method} {path}: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteRejected(response.status_code, response.text[:500])
        return response

    async def fetch_all(self, user_id: str) -> list[dict]:
        # Filas JSON sin validar: el pull valida cada una y omite las inválidas
        response = await self._request(
            "GET", f"/{self.table}",
            params={"select": "*", "user_id": f"eq.{user_id}"},
        )
        return response.json()

    async def create(self, entity: E, children: list[BaseModel] | None = None) -> E:
        # Upsert: si la respuesta anterior se perdió, el reintento no falla
        response = await self._request(
            "POST", f"/{self.table}",
            json=entity.model_dump(mode="json"),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._first_or(response, entity)

    async def update(self, entity: E, children: list[BaseModel] | None = None) -> E:
        response = await self._request(
            "PATCH", f"/{self.table}",
            params={"id": f"eq.{entity.id}"},
            json=entity.model_dump(mode="json"),
            headers={"Prefer": "return=representation"},
        )
        return self._first_or(response, entity)

    async def delete(self, entity_id: str) -> None:
        await self._request("DELETE", f"/{self.table}", params={"id": f"eq.{entity_id}"})

    def _first_or(self, response: httpx.Response, fallback: E) -> E:
        if not response.content:
            return fallback
        rows = response.json()
        if isinstance(rows, list) and rows:
            return self.schema.model_validate(rows[0])
        return fallback


class CompositeRemoteCollection(RemoteCollection[E], Generic[E, C]):
    """
    Tabla padre + tabla hija (citas/caballos, facturas/ítems).
    Las hijas se reemplazan completas en cada create/update.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        table: str,
        schema: type[E],
        child_table: str,
        child_schema: type[C],
        child_fk: str,
    ):
        super().__init__(client, table, schema)
        self.child_table = child_table
        self.child_schema = child_schema
        self.child_fk = child_fk

    async def fetch_children(self, parent_id: str) -> list[C]:
        response = await self._request(
            "GET", f"/{self.child_table}",
            params={"select": "*", self.child_fk: f"eq.{parent_id}"},
        )
        return [self.child_schema.model_validate(row) for row in response.json()]

    async def create(self, entity: E, children: list[C] | None = None) -> E:
        result = await super().create(entity)
        await self._replace_children(entity.id, children or [])
        return result

    async def update(self, entity: E, children: list[C] | None = None) -> E:
        result = await super().update(entity)
        await self._replace_children(entity.id, children or [])
        return result

    async def _replace_children(self, parent_id: str, children: list[C]) -> None:
        await self._request(
            "DELETE", f"/{self.child_table}",
            params={self.child_fk: f"eq.{parent_id}"},
        )
        if children:
            await self._request(
                "POST", f"/{self.child_table}",
                json=[child.model_dump(mode="json") for child in children],
            )


def build_remote_collections(client: httpx.AsyncClient) -> dict[EntityType, RemoteCollection]:
    """Una colección remota por tipo de entidad sincronizable."""
    return {
        EntityType.CLIENT: RemoteCollection(client, "clients", ClientDTO),
        EntityType.HORSE: RemoteCollection(client, "horses", HorseDTO),
        EntityType.SERVICE_PRICE: RemoteCollection(client, "service_prices", ServicePriceDTO),
        EntityType.APPOINTMENT: CompositeRemoteCollection(
            client, "appointments", AppointmentDTO,
            child_table="appointment_horses",
            child_schema=AppointmentHorseDTO,
            child_fk="appointment_id",
        ),
        EntityType.INVOICE: CompositeRemoteCollection(
            client, "invoices", InvoiceDTO,
            child_table="invoice_items",
            child_schema=InvoiceItemDTO,
            child_fk="invoice_id",
        ),
    }
