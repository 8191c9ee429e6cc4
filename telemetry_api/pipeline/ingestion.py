"""Pipeline de ingesta de telemetría.

Flujo por mensaje:
1. deviceId desconocido → NotFoundError
2. El dispositivo se marca activo y se refresca last_active_at (siempre)
3. sleep: se persiste sin filtros
4. health: candidato (payload + líneas) → presencia → reglas → persistencia

Presencia, reglas y persistencia de un mismo dispositivo corren bajo su lock
(``PresenceTracker.device``), así que los mensajes de un dispositivo no se
intercalan entre sí y dispositivos distintos avanzan en paralelo.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from sqlalchemy.engine import Engine

from ..errors import NotFoundError, ValidationError
from ..metrics import PROCESSING_LATENCY, RECORDS_PERSISTED, RECORDS_RETRACTED
from ..persistence import DeviceRepository, TelemetryRepository
from ..rules import RuleTable
from ..tracking import PresenceTracker, PresenceTransition, RejectReason, presence_of
from .health_record import build_health_candidate, lookup_metric

logger = logging.getLogger(__name__)

DEFAULT_RETRACTION_WINDOW_SECONDS = 12.0


class IngestKind(str, Enum):
    HEALTH = "health"
    SLEEP = "sleep"


class IngestStatus(str, Enum):
    STORED = "stored"
    SKIPPED = "skipped"


@dataclass
class IngestOutcome:
    """Resultado de procesar un mensaje."""
    device_id: str
    kind: str
    status: IngestStatus
    reason: Optional[str] = None
    retracted: int = 0
    violations: List[str] = field(default_factory=list)

    @property
    def stored(self) -> bool:
        return self.status == IngestStatus.STORED

    def to_dict(self) -> dict:
        return {
            "deviceId": self.device_id,
            "type": self.kind,
            "status": self.status.value,
            "reason": self.reason,
            "retracted": self.retracted,
            "violations": list(self.violations),
        }


def parse_kind(kind: Any) -> IngestKind:
    try:
        return IngestKind(str(kind or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown telemetry type: {kind!r}") from None


class IngestionPipeline:
    """Orquesta decodificación, presencia, reglas y persistencia."""

    def __init__(
        self,
        engine: Engine,
        rules: RuleTable,
        tracker: PresenceTracker,
        retraction_window_seconds: float = DEFAULT_RETRACTION_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._engine = engine
        self._rules = rules
        self._tracker = tracker
        self._window = float(retraction_window_seconds)
        self._clock = clock

        self._stats_lock = threading.Lock()
        self._stats = {
            "health_stored": 0,
            "sleep_stored": 0,
            "skipped_presence": 0,
            "skipped_out_of_range": 0,
            "skipped_unchanged": 0,
            "retractions": 0,
            "records_retracted": 0,
        }

    @property
    def tracker(self) -> PresenceTracker:
        return self._tracker

    def ingest(self, device_id: str, kind: Any, payload: Optional[Mapping[str, Any]]) -> IngestOutcome:
        """Procesa un mensaje (deviceId, tipo, payload).

        Raises:
            ValidationError: tipo desconocido o deviceId vacío
            NotFoundError: dispositivo no registrado
        """
        ingest_kind = parse_kind(kind)
        device_id = str(device_id or "").strip().upper()
        if not device_id:
            raise ValidationError("deviceId is required")
        if payload is not None and not isinstance(payload, Mapping):
            raise ValidationError("data must be a JSON object")
        payload = payload or {}

        start = time.perf_counter()
        device_type = self._mark_device_seen(device_id)

        if ingest_kind == IngestKind.SLEEP:
            outcome = self._store_sleep(device_id, payload)
        else:
            outcome = self._ingest_health(device_id, device_type, payload)

        PROCESSING_LATENCY.observe(time.perf_counter() - start)
        return outcome

    def _mark_device_seen(self, device_id: str) -> str:
        with self._engine.begin() as conn:
            devices = DeviceRepository(conn)
            device_type = devices.get_device_type(device_id)
            if device_type is None:
                raise NotFoundError(f"Device {device_id} not found")
            devices.mark_seen(device_id, self._clock())
        return device_type

    def _store_sleep(self, device_id: str, payload: Mapping[str, Any]) -> IngestOutcome:
        quality = payload.get("sleepQuality")
        duration = payload.get("duration")
        try:
            duration_value = float(duration) if duration is not None else 0.0
        except (TypeError, ValueError):
            duration_value = 0.0

        with self._engine.begin() as conn:
            TelemetryRepository(conn).insert_sleep(
                device_id,
                self._clock(),
                str(quality) if quality else "Unknown",
                duration_value,
            )

        self._bump("sleep_stored", 1)
        RECORDS_PERSISTED.labels(kind=IngestKind.SLEEP.value).inc()
        return IngestOutcome(device_id, IngestKind.SLEEP.value, IngestStatus.STORED)

    def _ingest_health(
        self,
        device_id: str,
        device_type: str,
        payload: Mapping[str, Any],
    ) -> IngestOutcome:
        candidate = build_health_candidate(device_id, payload)
        presence = presence_of(candidate["signals"])
        rules = self._rules.rules_for(device_type)
        kind = IngestKind.HEALTH.value

        with self._tracker.device(device_id) as entry:
            now = self._clock()
            retracted = 0

            transition = self._tracker.observe_presence(entry, presence)
            if transition == PresenceTransition.DROPPED:
                retracted = self._retract(device_id, now)
            elif transition == PresenceTransition.RESUMED:
                logger.info("[PIPELINE] Presence resumed device=%s", device_id)

            if presence == 0:
                self._bump("skipped_presence", 1)
                return IngestOutcome(
                    device_id,
                    kind,
                    IngestStatus.SKIPPED,
                    reason=RejectReason.PRESENCE_ABSENT.value,
                    retracted=retracted,
                )

            decision = self._tracker.evaluate(
                entry, rules, lambda name: lookup_metric(candidate, name)
            )
            if not decision.accepted:
                reason = decision.reason.value if decision.reason else None
                if decision.reason == RejectReason.OUT_OF_RANGE:
                    self._bump("skipped_out_of_range", 1)
                    logger.info(
                        "[PIPELINE] Dropped out-of-range message device=%s violations=%s",
                        device_id,
                        ",".join(decision.violations),
                    )
                else:
                    self._bump("skipped_unchanged", 1)
                    logger.debug("[PIPELINE] Dropped unchanged message device=%s", device_id)
                return IngestOutcome(
                    device_id,
                    kind,
                    IngestStatus.SKIPPED,
                    reason=reason,
                    retracted=retracted,
                    violations=decision.violations,
                )

            record = dict(candidate)
            record["ts"] = now
            record["presence"] = presence
            with self._engine.begin() as conn:
                TelemetryRepository(conn).insert_health(record)

            # Solo después de persistir: un fallo de BD no mueve la línea base
            self._tracker.commit(entry, decision)

        self._bump("health_stored", 1)
        RECORDS_PERSISTED.labels(kind=kind).inc()
        return IngestOutcome(device_id, kind, IngestStatus.STORED, retracted=retracted)

    def _retract(self, device_id: str, now: float) -> int:
        """Borra los registros de salud de la ventana [now - window, now]."""
        with self._engine.begin() as conn:
            deleted = TelemetryRepository(conn).delete_health_range(
                device_id, now - self._window, now
            )

        self._bump("retractions", 1)
        self._bump("records_retracted", deleted)
        RECORDS_RETRACTED.inc(deleted)
        logger.info(
            "[PIPELINE] Presence dropped device=%s retracted=%d window=%.1fs",
            device_id,
            deleted,
            self._window,
        )
        return deleted

    def _bump(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def get_stats(self) -> dict:
        with self._stats_lock:
            stats = dict(self._stats)
        stats.update(self._tracker.get_stats())
        return stats
