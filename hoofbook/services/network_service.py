"""
Estado de conectividad para el scheduler de sync.

El scheduler no despacha un ciclo sin red: espera a que el monitor
reporte conexión. Quien conoce el estado real (la UI, un health-check
del backend) lo informa con set_online().
"""

import asyncio
import logging
from typing import Callable

from hoofbook.core.observable import Observable

logger = logging.getLogger(__name__)


class NetworkMonitor:

    def __init__(self, online: bool = True):
        self._online: Observable[bool] = Observable(online)
        self._event: asyncio.Event | None = None

    @property
    def is_online(self) -> bool:
        return self._online.value

    def set_online(self, online: bool) -> None:
        if online != self._online.value:
            logger.info(f"Conectividad: {'online' if online else 'offline'}")
        self._online.publish(online)
        if self._event is not None:
            if online:
                self._event.set()
            else:
                self._event.clear()

    def observe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._online.subscribe(callback)

    async def wait_online(self) -> None:
        # El Event se crea perezosamente dentro del loop que lo usa
        if self._event is None:
            self._event = asyncio.Event()
            if self.is_online:
                self._event.set()
        await self._event.wait()

