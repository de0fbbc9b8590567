"""
Scheduler de sincronización: ciclos periódicos y a demanda con backoff.

Dos piezas:
- JobHost: ejecuta trabajos con precondición de red, backoff exponencial
  entre intentos y estado observable por tag. AsyncioJobHost lo
  implementa dentro del event loop de la app; en workers Celery el rol
  lo cumple hoofbook.tasks.sync_tasks.
- RetryScheduler: decide el resultado de cada intento (éxito, reintento,
  falla definitiva) y publica el estado agregado para la UI:

    IDLE → PENDING → SYNCING → IDLE | FAILED

Techo de reintentos: SYNC_MAX_ATTEMPTS corridas de la misma invocación.
El próximo tick periódico o trigger inmediato arranca un contador nuevo.
"""

import asyncio
import enum
import logging
import random
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Protocol

from hoofbook.core.exceptions import NotAuthenticated
from hoofbook.core.observable import Observable
from hoofbook.database import utcnow
from hoofbook.schemas.sync import SyncResult
from hoofbook.services.network_service import NetworkMonitor

logger = logging.getLogger(__name__)

PERIODIC_SYNC_JOB = "hoofbook_periodic_sync"
TAG_PERIODIC_SYNC = "sync_periodic"
TAG_IMMEDIATE_SYNC = "sync_immediate"


class JobOutcome(str, enum.Enum):
    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    FAILURE = "FAILURE"


class JobState(str, enum.Enum):
    ENQUEUED = "ENQUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_finished(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class SyncState(str, enum.Enum):
    """Estado visible en la UI. No participa de ninguna decisión del motor."""
    IDLE = "IDLE"
    PENDING = "PENDING"
    SYNCING = "SYNCING"
    FAILED = "FAILED"


@dataclass(frozen=True)
class JobInfo:
    id: str
    tag: str
    state: JobState
    attempt: int = 0
    name: str | None = None
    expedited: bool = False
    enqueued_at: datetime | None = None


# El trabajo recibe el número de intento (0 = primera corrida)
Work = Callable[[int], Awaitable[JobOutcome]]
Sleep = Callable[[float], Awaitable[None]]


class JobHost(ABC):

    @abstractmethod
    def schedule_periodic(
        self,
        name: str,
        tag: str,
        interval: timedelta,
        flex: timedelta,
        work: Work,
        backoff_base: timedelta,
    ) -> bool:
        """Registra un trabajo periódico único. False si ya existía (KEEP)."""

    @abstractmethod
    def schedule_once(
        self,
        tag: str,
        work: Work,
        expedited: bool = False,
        backoff_base: timedelta = timedelta(minutes=1),
    ) -> str:
        """Encola una ejecución. Retorna el id del trabajo."""

    @abstractmethod
    def cancel_all(self, tag: str) -> int:
        """Cancela los trabajos del tag. Retorna cuántos se cancelaron."""

    @abstractmethod
    def observe_status(
        self,
        tag: str,
        callback: Callable[[tuple[JobInfo, ...]], None],
    ) -> Callable[[], None]:
        """Suscribe a los cambios de estado de los trabajos del tag."""


class AsyncioJobHost(JobHost):
    """
    Host de trabajos sobre asyncio.

    - Antes de cada intento espera a que haya red.
    - Entre intentos aplica min(base * 2**intento, backoff_max).
    - Los trabajos expeditos consumen una cuota por ventana; agotada la
      cuota, el trabajo corre como estándar tras non_expedited_delay.
    """

    # Trabajos terminados que se conservan por tag (para el estado FAILED)
    FINISHED_HISTORY = 20

    def __init__(
        self,
        network: NetworkMonitor,
        sleep: Sleep = asyncio.sleep,
        backoff_max: timedelta = timedelta(hours=5),
        expedited_quota: int | None = None,
        expedited_window: timedelta = timedelta(hours=1),
        non_expedited_delay: timedelta = timedelta(seconds=30),
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._network = network
        self._sleep = sleep
        self._backoff_max = backoff_max.total_seconds()
        self._expedited_quota = expedited_quota
        self._expedited_window = expedited_window.total_seconds()
        self._non_expedited_delay = non_expedited_delay.total_seconds()
        self._monotonic = monotonic

        self._jobs: dict[str, JobInfo] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._unique: dict[str, str] = {}
        self._status: dict[str, Observable[tuple[JobInfo, ...]]] = {}
        self._expedited_runs: deque[float] = deque()

    # ── API del host ─────────────────────────────────

    def schedule_periodic(
        self,
        name: str,
        tag: str,
        interval: timedelta,
        flex: timedelta,
        work: Work,
        backoff_base: timedelta,
    ) -> bool:
        job_id = self._unique.get(name)
        existing = self._jobs.get(job_id) if job_id else None
        if existing is not None and not existing.state.is_finished:
            logger.debug(f"Trabajo periódico '{name}' ya registrado, se conserva")
            return False

        job = self._register(JobInfo(
            id=uuid.uuid4().hex, tag=tag, state=JobState.ENQUEUED,
            name=name, enqueued_at=utcnow(),
        ))
        self._unique[name] = job.id
        self._start(job.id, self._periodic_loop(
            job.id, work, interval.total_seconds(), flex.total_seconds(),
            backoff_base.total_seconds(),
        ))
        logger.info(
            f"Trabajo periódico '{name}' registrado cada "
            f"{interval.total_seconds() / 60:.0f} min (flex {flex.total_seconds() / 60:.0f} min)"
        )
        return True

    def schedule_once(
        self,
        tag: str,
        work: Work,
        expedited: bool = False,
        backoff_base: timedelta = timedelta(minutes=1),
    ) -> str:
        delay = 0.0
        if expedited and not self._take_expedited_slot():
            logger.info("Cuota de trabajos expeditos agotada, se encola como estándar")
            expedited = False
            delay = self._non_expedited_delay

        job = self._register(JobInfo(
            id=uuid.uuid4().hex, tag=tag, state=JobState.ENQUEUED,
            expedited=expedited, enqueued_at=utcnow(),
        ))
        self._start(job.id, self._run_once(job.id, work, backoff_base.total_seconds(), delay))
        return job.id

    def cancel_all(self, tag: str) -> int:
        cancelled = 0
        for job_id, job in list(self._jobs.items()):
            if job.tag != tag or job.state.is_finished:
                continue
            task = self._tasks.pop(job_id, None)
            if task is not None:
                task.cancel()
            self._update(job_id, state=JobState.CANCELLED)
            cancelled += 1

        for name, job_id in list(self._unique.items()):
            job = self._jobs.get(job_id)
            if job is None or job.tag == tag:
                del self._unique[name]

        if cancelled:
            logger.info(f"Cancelados {cancelled} trabajos con tag '{tag}'")
        return cancelled

    def observe_status(
        self,
        tag: str,
        callback: Callable[[tuple[JobInfo, ...]], None],
    ) -> Callable[[], None]:
        return self._observable(tag).subscribe(callback)

    def get_jobs(self, tag: str) -> tuple[JobInfo, ...]:
        return self._observable(tag).value

    async def shutdown(self) -> None:
        """Cancela y espera todas las tareas (cierre de la app)."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def backoff_delay(self, base: float, attempt: int) -> float:
        return min(base * (2 ** attempt), self._backoff_max)

    # ── Ejecución ────────────────────────────────────

    async def _run_once(self, job_id: str, work: Work, backoff_base: float, delay: float) -> None:
        if delay:
            await self._sleep(delay)
        try:
            await self._run_with_backoff(job_id, work, backoff_base)
        finally:
            self._tasks.pop(job_id, None)

    async def _periodic_loop(
        self,
        job_id: str,
        work: Work,
        interval: float,
        flex: float,
        backoff_base: float,
    ) -> None:
        while True:
            await self._run_with_backoff(job_id, work, backoff_base, periodic=True)
            # Corre en algún momento dentro de la ventana flex al final del intervalo
            await self._sleep(interval - random.uniform(0, flex))

    async def _run_with_backoff(
        self,
        job_id: str,
        work: Work,
        backoff_base: float,
        periodic: bool = False,
    ) -> JobOutcome:
        attempt = 0
        while True:
            await self._network.wait_online()
            self._update(job_id, state=JobState.RUNNING, attempt=attempt)

            try:
                outcome = await work(attempt)
            except asyncio.CancelledError:
                self._update(job_id, state=JobState.CANCELLED)
                raise
            except Exception:
                logger.exception(f"Trabajo {job_id} terminó con error no controlado")
                outcome = JobOutcome.FAILURE

            if outcome == JobOutcome.RETRY:
                delay = self.backoff_delay(backoff_base, attempt)
                logger.info(f"Trabajo {job_id}: reintento {attempt + 1} en {delay:.0f}s")
                self._update(job_id, state=JobState.ENQUEUED)
                await self._sleep(delay)
                attempt += 1
                continue

            if periodic:
                # El trabajo periódico vuelve a quedar encolado para el próximo tick
                self._update(job_id, state=JobState.ENQUEUED, attempt=0)
            elif outcome == JobOutcome.SUCCESS:
                self._update(job_id, state=JobState.SUCCEEDED)
            else:
                self._update(job_id, state=JobState.FAILED)
            return outcome

    # ── Registro y estado ────────────────────────────

    def _take_expedited_slot(self) -> bool:
        if self._expedited_quota is None:
            return True
        now = self._monotonic()
        while self._expedited_runs and now - self._expedited_runs[0] >= self._expedited_window:
            self._expedited_runs.popleft()
        if len(self._expedited_runs) >= self._expedited_quota:
            return False
        self._expedited_runs.append(now)
        return True

    def _start(self, job_id: str, coro) -> None:
        self._tasks[job_id] = asyncio.get_running_loop().create_task(coro)

    def _register(self, job: JobInfo) -> JobInfo:
        self._jobs[job.id] = job
        self._prune(job.tag)
        self._publish(job.tag)
        return job

    def _update(self, job_id: str, **changes) -> None:
        job = self._jobs.get(job_id)
        if job is None or (job.state == JobState.CANCELLED and changes.get("state") != JobState.CANCELLED):
            return
        self._jobs[job_id] = replace(job, **changes)
        self._publish(job.tag)

    def _prune(self, tag: str) -> None:
        finished = [j for j in self._jobs.values() if j.tag == tag and j.state.is_finished]
        for job in finished[:-self.FINISHED_HISTORY]:
            del self._jobs[job.id]

    def _observable(self, tag: str) -> Observable[tuple[JobInfo, ...]]:
        if tag not in self._status:
            self._status[tag] = Observable(self._snapshot(tag))
        return self._status[tag]

    def _snapshot(self, tag: str) -> tuple[JobInfo, ...]:
        return tuple(job for job in self._jobs.values() if job.tag == tag)

    def _publish(self, tag: str) -> None:
        self._observable(tag).publish(self._snapshot(tag))


class SyncRunner(Protocol):
    """Lo que el scheduler necesita del orquestador."""

    async def perform_sync(self) -> SyncResult: ...


class RetryScheduler:

    def __init__(
        self,
        host: JobHost,
        orchestrator: SyncRunner,
        network: NetworkMonitor,
        max_attempts: int = 5,
        backoff_base: timedelta = timedelta(minutes=1),
        periodic_interval: timedelta = timedelta(minutes=15),
        periodic_flex: timedelta = timedelta(minutes=5),
        cleanup: Callable[[], Awaitable[int]] | None = None,
    ):
        self._host = host
        self._orchestrator = orchestrator
        self._network = network
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._periodic_interval = periodic_interval
        self._periodic_flex = periodic_flex
        self._cleanup = cleanup

        self._jobs: dict[str, tuple[JobInfo, ...]] = {
            TAG_PERIODIC_SYNC: (),
            TAG_IMMEDIATE_SYNC: (),
        }
        self._state: Observable[SyncState] = Observable(SyncState.IDLE)
        for tag in self._jobs:
            self._host.observe_status(tag, self._on_jobs_changed(tag))

    # ── Disparadores ─────────────────────────────────

    def schedule_periodic_sync(self) -> bool:
        return self._host.schedule_periodic(
            name=PERIODIC_SYNC_JOB,
            tag=TAG_PERIODIC_SYNC,
            interval=self._periodic_interval,
            flex=self._periodic_flex,
            work=self._periodic_attempt,
            backoff_base=self._backoff_base,
        )

    def trigger_immediate_sync(self) -> str:
        """Encola un ciclo expedito. Retorna sin esperar a que corra."""
        logger.debug("Sync inmediato solicitado")
        return self._host.schedule_once(
            tag=TAG_IMMEDIATE_SYNC,
            work=self.run_attempt,
            expedited=True,
            backoff_base=self._backoff_base,
        )

    def cancel_all_sync(self) -> None:
        self._host.cancel_all(TAG_PERIODIC_SYNC)
        self._host.cancel_all(TAG_IMMEDIATE_SYNC)

    # ── Un intento ───────────────────────────────────

    async def run_attempt(self, attempt: int) -> JobOutcome:
        if not self._network.is_online:
            logger.info(f"Sin red en el intento {attempt + 1}")
            return self._retry_or_fail(attempt)

        try:
            result = await self._orchestrator.perform_sync()
        except NotAuthenticated:
            logger.warning("Sync abortado: no hay sesión activa")
            return JobOutcome.FAILURE
        except Exception as exc:
            logger.error(f"Sync falló en el intento {attempt + 1}/{self._max_attempts}: {exc}")
            return self._retry_or_fail(attempt)

        logger.info(
            f"Sync OK: pushed={result.pushed_count}, pulled={result.pulled_count}"
        )
        return JobOutcome.SUCCESS

    async def _periodic_attempt(self, attempt: int) -> JobOutcome:
        outcome = await self.run_attempt(attempt)
        if outcome == JobOutcome.SUCCESS and self._cleanup is not None:
            await self._cleanup()
        return outcome

    def _retry_or_fail(self, attempt: int) -> JobOutcome:
        if attempt + 1 >= self._max_attempts:
            logger.error(f"Sync falló definitivamente tras {attempt + 1} intentos")
            return JobOutcome.FAILURE
        return JobOutcome.RETRY

    # ── Estado para la UI ────────────────────────────

    @property
    def state(self) -> SyncState:
        return self._state.value

    def observe_state(self, callback: Callable[[SyncState], None]) -> Callable[[], None]:
        return self._state.subscribe(callback)

    def _on_jobs_changed(self, tag: str) -> Callable[[tuple[JobInfo, ...]], None]:
        def callback(jobs: tuple[JobInfo, ...]) -> None:
            self._jobs[tag] = jobs
            self._state.publish(self._derive_state())
        return callback

    def _derive_state(self) -> SyncState:
        all_jobs = self._jobs[TAG_PERIODIC_SYNC] + self._jobs[TAG_IMMEDIATE_SYNC]
        if any(job.state == JobState.RUNNING for job in all_jobs):
            return SyncState.SYNCING

        immediate = self._jobs[TAG_IMMEDIATE_SYNC]
        if any(job.state == JobState.ENQUEUED for job in immediate):
            return SyncState.PENDING

        finished = [job for job in immediate if job.state.is_finished]
        if finished and finished[-1].state == JobState.FAILED:
            return SyncState.FAILED
        return SyncState.IDLE
