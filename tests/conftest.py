"""
Fixtures compartidas para Pytest.
Configura base local de test, colaboradores remotos falsos y cliente HTTP.
"""

import asyncio
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hoofbook.auth.session import SessionStore
from hoofbook.config import Settings
from hoofbook.context import SyncContext, build_sync_context
from hoofbook.core.exceptions import RemoteRejected
from hoofbook.database import create_engine, create_session_factory, init_db
from hoofbook.main import create_app
from hoofbook.models import Client, EntitySyncStatus, EntityType
from hoofbook.schemas.remote import (
    AppointmentDTO,
    AppointmentHorseDTO,
    ClientDTO,
    HorseDTO,
    InvoiceDTO,
    InvoiceItemDTO,
    ServicePriceDTO,
)
from hoofbook.services.sync_handlers import build_default_registry
from hoofbook.services.sync_queue_service import MutationQueue
from hoofbook.services.sync_service import SyncOrchestrator

USER_ID = "user-1"
BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Dobles de prueba ─────────────────────────────────

class FakeAuth:
    def __init__(self, user_id: str | None = USER_ID):
        self.user_id = user_id

    def get_user_id(self) -> str | None:
        return self.user_id


class FakeClock:
    """Reloj controlado: cada lectura avanza `step`."""

    def __init__(self, now: datetime = BASE_TIME, step: timedelta = timedelta(seconds=1)):
        self.now = now
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeSleep:
    """Registra las esperas. Las largas (ticks periódicos) quedan bloqueadas."""

    def __init__(self, block_over: float = 600.0):
        self.delays: list[float] = []
        self.block_over = block_over
        self._forever = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if delay >= self.block_over:
            await self._forever.wait()
        await asyncio.sleep(0)


class FakeRemote:
    """Colaborador remoto en memoria con el mismo contrato que RemoteCollection."""

    def __init__(self, schema, child_schema=None):
        self.schema = schema
        self.child_schema = child_schema
        self.rows: dict[str, object] = {}
        self.children: dict[str, list] = {}
        self.errors: dict[str, Exception] = {}
        self.fetch_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []
        self.on_push = None
        self.active = 0
        self.max_active = 0

    def _check(self, op: str, entity_id: str) -> None:
        self.calls.append((op, entity_id))
        if entity_id in self.errors:
            raise self.errors[entity_id]

    async def fetch_all(self, user_id: str) -> list:
        self.calls.append(("fetch_all", user_id))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if self.fetch_error is not None:
                raise self.fetch_error
            return [row for row in self.rows.values() if row.user_id == user_id]
        finally:
            self.active -= 1

    async def create(self, entity, children=None):
        self._check("create", entity.id)
        self.rows[entity.id] = entity
        self.children[entity.id] = list(children or [])
        if self.on_push is not None:
            await self.on_push(entity)
        return entity

    async def update(self, entity, children=None):
        self._check("update", entity.id)
        if entity.id not in self.rows:
            raise RemoteRejected(404, "not found")
        self.rows[entity.id] = entity
        self.children[entity.id] = list(children or [])
        if self.on_push is not None:
            await self.on_push(entity)
        return entity

    async def delete(self, entity_id: str) -> None:
        self._check("delete", entity_id)
        self.rows.pop(entity_id, None)
        self.children.pop(entity_id, None)

    async def fetch_children(self, parent_id: str) -> list:
        self.calls.append(("fetch_children", parent_id))
        return list(self.children.get(parent_id, []))


def make_token(user_id: str = USER_ID, expires_in: timedelta = timedelta(hours=1)) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": user_id, "iat": now, "exp": now + expires_in},
        "test-secret",
        algorithm="HS256",
    )


def client_dto(client_id: str | None = None, updated_at: datetime = BASE_TIME, **extra) -> ClientDTO:
    values = {
        "id": client_id or str(uuid4()),
        "user_id": USER_ID,
        "name": "Ana Gómez",
        "first_name": "Ana",
        "last_name": "Gómez",
        "phone": "+54 11 5555-0000",
        "created_at": BASE_TIME,
        "updated_at": updated_at,
    }
    values.update(extra)
    return ClientDTO(**values)


def horse_dto(client_id: str, horse_id: str | None = None, updated_at: datetime = BASE_TIME, **extra) -> HorseDTO:
    values = {
        "id": horse_id or str(uuid4()),
        "user_id": USER_ID,
        "client_id": client_id,
        "name": "Relámpago",
        "created_at": BASE_TIME,
        "updated_at": updated_at,
    }
    values.update(extra)
    return HorseDTO(**values)


async def insert_client(
    session_factory: async_sessionmaker[AsyncSession],
    client_id: str | None = None,
    updated_at: datetime = BASE_TIME,
    sync_status: EntitySyncStatus = EntitySyncStatus.SYNCED,
    **extra,
) -> Client:
    """Inserta un cliente directo en la base local (sin pasar por la cola)."""
    values = client_dto(client_id, updated_at, **extra).model_dump()
    client = Client(**values, sync_status=sync_status)
    async with session_factory() as session:
        async with session.begin():
            session.add(client)
    return client


# ── Base local ───────────────────────────────────────

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DEBUG=False,
        LOCAL_DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        SESSION_TOKEN_PATH=str(tmp_path / "session" / "access_token"),
        REMOTE_API_URL="http://remote.test",
        REMOTE_API_KEY="anon-key",
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Crea las tablas en una base SQLite por test."""
    engine = create_engine(settings.LOCAL_DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def queue(session_factory, clock) -> MutationQueue:
    return MutationQueue(session_factory, clock=clock)


# ── Motor de sync con remotos falsos ─────────────────

@pytest.fixture
def remotes() -> dict[EntityType, FakeRemote]:
    return {
        EntityType.CLIENT: FakeRemote(ClientDTO),
        EntityType.HORSE: FakeRemote(HorseDTO),
        EntityType.SERVICE_PRICE: FakeRemote(ServicePriceDTO),
        EntityType.APPOINTMENT: FakeRemote(AppointmentDTO, AppointmentHorseDTO),
        EntityType.INVOICE: FakeRemote(InvoiceDTO, InvoiceItemDTO),
    }


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def orchestrator(session_factory, queue, remotes, auth) -> SyncOrchestrator:
    return SyncOrchestrator(
        session_factory,
        queue,
        build_default_registry(remotes),
        auth=auth,
    )


# ── API local ────────────────────────────────────────

@pytest_asyncio.fixture
async def sync_context(settings, engine, remotes) -> AsyncGenerator[SyncContext, None]:
    ctx = build_sync_context(
        settings,
        engine=engine,
        session=SessionStore(settings.session_token_file),
        remotes=remotes,
        sleep=FakeSleep(),
    )
    yield ctx
    await ctx.aclose()


@pytest_asyncio.fixture
async def client(sync_context: SyncContext) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP de test contra la app con el contexto de test."""
    app = create_app()
    app.state.sync_context = sync_context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
