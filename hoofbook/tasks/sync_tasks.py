"""
Tareas Celery del motor de sync.

sync.run_cycle     — un ciclo push/pull completo. Reintenta con backoff
                     exponencial (countdown) hasta SYNC_MAX_ATTEMPTS
                     corridas en total. Un lock en Redis por usuario
                     evita ciclos concurrentes entre workers.
sync.cleanup_queue — barrido de retención de la cola local.
"""

import asyncio
import logging

import redis
from redis.exceptions import LockError

from hoofbook.config import get_settings
from hoofbook.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

settings = get_settings()

# Debe cubrir un ciclo completo con todos sus timeouts HTTP
SYNC_LOCK_TIMEOUT_SECONDS = 15 * 60


def get_redis() -> redis.Redis:
    return redis.Redis.from_url(settings.REDIS_URL)


def sync_lock_key(user_id: str) -> str:
    return f"hoofbook:sync-lock:{user_id}"


def retry_countdown(retries: int) -> int:
    """Segundos hasta el próximo intento: base * 2**retries, con tope."""
    delay = settings.SYNC_BACKOFF_BASE_SECONDS * (2 ** retries)
    return int(min(delay, settings.SYNC_BACKOFF_MAX_SECONDS))


@celery_app.task(
    bind=True,
    max_retries=settings.SYNC_MAX_ATTEMPTS - 1,
    name="sync.run_cycle",
)
def run_sync_cycle(self, user_id: str | None = None) -> dict:
    """
    Corre un ciclo de sync para la sesión guardada en el worker.
    Si se pasa user_id y no coincide con la sesión, no hace nada.
    """
    from hoofbook.auth.session import SessionStore
    from hoofbook.core.exceptions import NotAuthenticated

    session_user = SessionStore(settings.session_token_file).get_user_id()
    if not session_user:
        logger.warning("sync.run_cycle sin sesión activa, se omite")
        return {"status": "unauthenticated"}
    if user_id and user_id != session_user:
        logger.warning(f"sync.run_cycle para {user_id} pero la sesión es de {session_user}")
        return {"status": "skipped"}

    async def _process() -> dict:
        from hoofbook.context import build_sync_context

        ctx = build_sync_context(settings)
        try:
            result = await ctx.orchestrator.perform_sync()
            return result.model_dump()
        finally:
            await ctx.aclose()

    lock = get_redis().lock(
        sync_lock_key(session_user),
        timeout=SYNC_LOCK_TIMEOUT_SECONDS,
        blocking=False,
    )
    if not lock.acquire(blocking=False):
        logger.info(f"Ya hay un sync en curso para {session_user}, se omite")
        return {"status": "locked"}

    try:
        result = asyncio.run(_process())
    except NotAuthenticated:
        logger.warning(f"Sesión de {session_user} expiró durante el sync")
        return {"status": "unauthenticated"}
    except Exception as exc:
        attempt = self.request.retries + 1
        logger.error(f"Sync falló (intento {attempt}/{settings.SYNC_MAX_ATTEMPTS}): {exc}")
        raise self.retry(exc=exc, countdown=retry_countdown(self.request.retries))
    finally:
        try:
            lock.release()
        except LockError:
            logger.warning(f"El lock de sync de {session_user} expiró antes de liberarse")

    logger.info(
        f"Sync de {session_user} completado: pushed={result['pushed_count']}, "
        f"pulled={result['pulled_count']}"
    )
    return {"status": "completed", **result}


@celery_app.task(name="sync.cleanup_queue")
def cleanup_sync_queue() -> int:
    """
    Task periódico: borra entradas COMPLETED de la cola con más de
    SYNC_RETENTION_DAYS días. Ejecutar como cron diario.
    """
    async def _cleanup() -> int:
        from hoofbook.database import create_engine, create_session_factory
        from hoofbook.services.sync_queue_service import MutationQueue

        engine = create_engine(settings.LOCAL_DATABASE_URL)
        try:
            queue = MutationQueue(
                create_session_factory(engine),
                retention_days=settings.SYNC_RETENTION_DAYS,
            )
            return await queue.delete_completed()
        finally:
            await engine.dispose()

    deleted = asyncio.run(_cleanup())
    logger.info(f"Limpieza de cola de sync: {deleted} entradas eliminadas")
    return deleted
