"""
Configuración de Celery para correr el sync fuera del proceso de la API.
"""

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from hoofbook.config import get_settings

settings = get_settings()

celery_app = Celery(
    "hoofbook",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["hoofbook.tasks.sync_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# ── Tareas periódicas (celery beat) ──────────────────
celery_app.conf.beat_schedule = {
    "sync-periodic": {
        "task": "sync.run_cycle",
        "schedule": timedelta(minutes=settings.SYNC_PERIODIC_INTERVAL_MINUTES),
    },
    "sync-cleanup-queue": {
        "task": "sync.cleanup_queue",
        "schedule": crontab(hour=3, minute=0),
    },
}
