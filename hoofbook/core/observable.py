"""
Observable — valor con suscriptores, para los indicadores de la UI
(contador de pendientes, estado de sync).

Semántica de "state flow": al suscribirse se recibe el valor actual y
luego solo los cambios (valores iguales consecutivos no se re-emiten).
"""

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Registra un callback y retorna la función para desuscribirse."""
        with self._lock:
            self._subscribers.append(callback)
        self._notify(callback, self._value)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        with self._lock:
            if value == self._value:
                return
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            self._notify(callback, value)

    @staticmethod
    def _notify(callback: Callable[[T], None], value: T) -> None:
        # Un suscriptor de UI roto no debe interrumpir la sincronización
        try:
            callback(value)
        except Exception:
            logger.exception(f"Error en suscriptor {callback!r}")
