"""
Configuración de la base de datos local con SQLAlchemy 2.0 async.
La app es offline-first: todo se escribe primero en SQLite y luego
se sincroniza con el backend remoto.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import DateTime, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normaliza un datetime a UTC con tzinfo (naive se asume UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    DateTime que siempre entrega valores timezone-aware en UTC.
    SQLite no guarda el offset, así que se persiste en UTC y se
    re-etiqueta al leer.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


# ── Base declarativa ─────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Engine async ─────────────────────────────────────
def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Crea el engine local con foreign keys activadas en SQLite."""
    engine = create_async_engine(url, echo=echo)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# ── Session factory ──────────────────────────────────
def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Crea las tablas locales si no existen (primer arranque)."""
    # Importar modelos para registrarlos en Base.metadata
    import hoofbook.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── Transacción (propia o del llamador) ──────────────
@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
    session: AsyncSession | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Si el llamador ya tiene una sesión abierta, se reutiliza y el commit
    queda a su cargo. Si no, abre una sesión propia con commit al salir
    o rollback si algo falla.
    """
    if session is not None:
        yield session
        return

    async with session_factory() as own_session:
        async with own_session.begin():
            yield own_session
