"""Procesador asíncrono particionado por dispositivo.

Desacopla el callback de paho del pipeline (BD bloqueante): el callback solo
encola y retorna.

- N workers, el worker ``i`` es dueño de la cola ``i``
- Cada mensaje va a la cola ``crc32(deviceId) % N``: mismo dispositivo,
  misma cola, orden FIFO; dispositivos distintos en paralelo
- Colas acotadas: si la cola está llena el mensaje se descarta y se cuenta
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

from ..metrics import QUEUE_DROPS
from ..tracking import stripe_index
from .topics import InboundMessage

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_NUM_WORKERS = 4


class ShardedMessageProcessor:
    """Colas por shard + un thread por cola."""

    def __init__(
        self,
        handler: Callable[[InboundMessage], Any],
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        num_workers: int = DEFAULT_NUM_WORKERS,
    ):
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        self._handler = handler
        self._queues: list[queue.Queue] = [
            queue.Queue(maxsize=max_queue_size) for _ in range(num_workers)
        ]
        self._stop_event = threading.Event()
        self._workers: list[threading.Thread] = []

        # Métricas
        self._enqueued = 0
        self._dropped = 0
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

    @property
    def num_workers(self) -> int:
        return len(self._queues)

    def shard_for(self, device_id: str) -> int:
        return stripe_index(device_id.upper(), len(self._queues))

    def start(self) -> None:
        self._stop_event.clear()
        for i in range(len(self._queues)):
            t = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                daemon=True,
                name=f"telemetry-worker-{i}",
            )
            t.start()
            self._workers.append(t)
        logger.info(
            "[ASYNC_PROC] Started workers=%d queue_max=%d",
            len(self._queues),
            self._queues[0].maxsize,
        )

    def stop(self, drain: bool = True) -> None:
        """Detiene los workers; con drain=True procesa lo pendiente antes."""
        if drain:
            for q in self._queues:
                q.join()
        self._stop_event.set()
        for t in self._workers:
            t.join(timeout=5.0)
        self._workers.clear()
        logger.info("[ASYNC_PROC] Stopped. %s", self.metrics)

    def enqueue(self, message: InboundMessage) -> bool:
        """Encola sin bloquear. False si la cola del shard está llena."""
        shard = self.shard_for(message.device_id)
        try:
            self._queues[shard].put_nowait(message)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            QUEUE_DROPS.inc()
            logger.warning(
                "[ASYNC_PROC] Queue %d full, dropped device=%s kind=%s",
                shard,
                message.device_id,
                message.kind,
            )
            return False

        with self._lock:
            self._enqueued += 1
        return True

    def _worker_loop(self, worker_id: int) -> None:
        own_queue = self._queues[worker_id]
        while not self._stop_event.is_set():
            try:
                message = own_queue.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self._handler(message)
                with self._lock:
                    self._processed += 1
            except Exception:
                with self._lock:
                    self._errors += 1
                logger.exception(
                    "[ASYNC_PROC] Worker %d error device=%s",
                    worker_id,
                    message.device_id,
                )
            finally:
                own_queue.task_done()

    @property
    def metrics(self) -> dict:
        with self._lock:
            return {
                "workers": len(self._queues),
                "queue_depths": [q.qsize() for q in self._queues],
                "queue_max": self._queues[0].maxsize,
                "enqueued": self._enqueued,
                "dropped": self._dropped,
                "processed": self._processed,
                "errors": self._errors,
            }


def create_async_processor(
    handler: Callable[[InboundMessage], Any],
    num_workers: int,
    max_queue_size: int,
) -> ShardedMessageProcessor:
    processor = ShardedMessageProcessor(
        handler=handler,
        max_queue_size=max_queue_size,
        num_workers=num_workers,
    )
    processor.start()
    return processor
