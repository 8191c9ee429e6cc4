"""Lock por clave (striped).

Un número fijo de ``threading.Lock`` indexados por hash de la clave. Dos
claves distintas pueden compartir stripe (contención ocasional), pero la
misma clave siempre cae en el mismo lock.
"""

from __future__ import annotations

import threading
import zlib
from contextlib import contextmanager
from typing import Iterator


def stripe_index(key: str, stripes: int) -> int:
    """Índice estable de una clave (mismo criterio que el ruteo de workers MQTT)."""
    return zlib.crc32(key.encode("utf-8")) % stripes


class KeyedLock:
    """Exclusión mutua por clave sin un lock global."""

    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks = [threading.Lock() for _ in range(stripes)]

    @property
    def stripes(self) -> int:
        return len(self._locks)

    def lock_for(self, key: str) -> threading.Lock:
        return self._locks[stripe_index(key, len(self._locks))]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield

    @contextmanager
    def hold_many(self, *keys: str) -> Iterator[None]:
        """Toma los locks de varias claves en orden de stripe (sin deadlock)."""
        indices = sorted({stripe_index(k, len(self._locks)) for k in keys})
        acquired: list[threading.Lock] = []
        try:
            for index in indices:
                lock = self._locks[index]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
