"""
Construcción explícita del motor de sync.

Todas las dependencias se arman acá, una vez, en orden de hojas a raíz:
base local → cola → remotos → handlers → orquestador → scheduler →
repositorios. La API y los workers reciben el SyncContext ya armado.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from hoofbook.auth.session import SessionStore
from hoofbook.config import Settings
from hoofbook.database import create_engine, create_session_factory
from hoofbook.models import EntityType
from hoofbook.services.appointment_service import AppointmentRepository
from hoofbook.services.client_service import ClientRepository
from hoofbook.services.invoice_service import InvoiceRepository
from hoofbook.services.network_service import NetworkMonitor
from hoofbook.services.remote_service import (
    RemoteCollection,
    build_remote_collections,
    create_remote_client,
)
from hoofbook.services.repository_service import HorseRepository, ServicePriceRepository
from hoofbook.services.scheduler_service import AsyncioJobHost, JobHost, RetryScheduler, Sleep
from hoofbook.services.sync_handlers import HandlerRegistry, build_default_registry
from hoofbook.services.sync_queue_service import MutationQueue
from hoofbook.services.sync_service import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Repositories:
    clients: ClientRepository
    horses: HorseRepository
    service_prices: ServicePriceRepository
    appointments: AppointmentRepository
    invoices: InvoiceRepository


@dataclass
class SyncContext:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    session: SessionStore
    network: NetworkMonitor
    queue: MutationQueue
    registry: HandlerRegistry
    orchestrator: SyncOrchestrator
    host: JobHost
    scheduler: RetryScheduler
    repositories: Repositories
    http_client: httpx.AsyncClient | None = None
    _closed: bool = field(default=False, repr=False)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if isinstance(self.host, AsyncioJobHost):
            await self.host.shutdown()
        if self.http_client is not None:
            await self.http_client.aclose()
        await self.engine.dispose()


def build_sync_context(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    session: SessionStore | None = None,
    remotes: dict[EntityType, RemoteCollection] | None = None,
    network: NetworkMonitor | None = None,
    host: JobHost | None = None,
    sleep: Sleep | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncContext:
    """
    Arma el motor completo. Los parámetros opcionales permiten reemplazar
    piezas (base en memoria, remotos falsos, sleep controlado) en tests.
    """
    engine = engine or create_engine(settings.LOCAL_DATABASE_URL)
    session_factory = create_session_factory(engine)
    session = session or SessionStore(settings.session_token_file)
    network = network or NetworkMonitor()

    queue = MutationQueue(
        session_factory,
        batch_limit=settings.SYNC_BATCH_LIMIT,
        retention_days=settings.SYNC_RETENTION_DAYS,
    )

    http_client = None
    if remotes is None:
        http_client = create_remote_client(settings, session.get_access_token, transport=transport)
        remotes = build_remote_collections(http_client)
    registry = build_default_registry(remotes)

    orchestrator = SyncOrchestrator(
        session_factory,
        queue,
        registry,
        auth=session,
        batch_limit=settings.SYNC_BATCH_LIMIT,
        max_item_retries=settings.SYNC_MAX_ITEM_RETRIES,
    )

    if host is None:
        host_kwargs = {"sleep": sleep} if sleep is not None else {}
        host = AsyncioJobHost(
            network,
            backoff_max=timedelta(seconds=settings.SYNC_BACKOFF_MAX_SECONDS),
            expedited_quota=settings.SYNC_EXPEDITED_QUOTA,
            **host_kwargs,
        )

    scheduler = RetryScheduler(
        host,
        orchestrator,
        network,
        max_attempts=settings.SYNC_MAX_ATTEMPTS,
        backoff_base=timedelta(seconds=settings.SYNC_BACKOFF_BASE_SECONDS),
        periodic_interval=timedelta(minutes=settings.SYNC_PERIODIC_INTERVAL_MINUTES),
        periodic_flex=timedelta(minutes=settings.SYNC_FLEX_MINUTES),
        cleanup=queue.delete_completed,
    )

    session.on_sign_out(scheduler.cancel_all_sync)
    session.on_sign_out(queue.clear)

    repo_args = (session_factory, queue, session, scheduler.trigger_immediate_sync)
    repositories = Repositories(
        clients=ClientRepository(*repo_args),
        horses=HorseRepository(*repo_args),
        service_prices=ServicePriceRepository(*repo_args),
        appointments=AppointmentRepository(*repo_args),
        invoices=InvoiceRepository(*repo_args),
    )

    logger.info(f"Motor de sync armado ({settings.LOCAL_DATABASE_URL})")
    return SyncContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        session=session,
        network=network,
        queue=queue,
        registry=registry,
        orchestrator=orchestrator,
        host=host,
        scheduler=scheduler,
        repositories=repositories,
        http_client=http_client,
    )
