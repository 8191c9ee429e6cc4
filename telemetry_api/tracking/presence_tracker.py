"""Tracker de presencia y cambios por dispositivo.

Estado por dispositivo (en memoria del proceso, no se persiste):
- last_presence: 0/1, por defecto 1 (presente)
- last_values: último valor aceptado por métrica con regla

Reglas:
- Presencia 1 → 0: el pipeline retrae los registros recientes del dispositivo
- Presencia 0 → 1: se reanuda sin tratamiento especial
- Mientras presencia = 0 no se persiste nada
- Métricas ``onchange``: solo entran al set de cambios si difieren del último
  valor aceptado; la línea base solo se actualiza al aceptar el mensaje
- Cualquier métrica fuera de [min, max] descarta el mensaje completo
- Con reglas y sin cambios, el mensaje se descarta

El acceso a cada entrada se serializa con un ``KeyedLock`` por deviceId.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from ..decoding import to_number
from ..rules import DedupeMode, MetricRule
from .keyed_lock import KeyedLock


class PresenceTransition(str, Enum):
    """Transición de presencia observada al evaluar un mensaje."""

    NONE = "none"
    DROPPED = "dropped"
    RESUMED = "resumed"


class RejectReason(str, Enum):
    PRESENCE_ABSENT = "presence_absent"
    OUT_OF_RANGE = "out_of_range"
    UNCHANGED = "unchanged"


@dataclass
class TrackerEntry:
    """Estado de un dispositivo."""
    last_presence: int = 1
    last_values: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RuleDecision:
    """Resultado de evaluar las reglas contra un candidato."""
    accepted: bool
    reason: Optional[RejectReason] = None
    violations: List[str] = field(default_factory=list)
    changed: Dict[str, Any] = field(default_factory=dict)


def presence_of(signals: Optional[Mapping[str, Any]]) -> int:
    """Lee presencia de ``signals.presence``.

    None/ausente → 1, booleanos → 1/0, números → 1 sii valen 1.
    """
    value = (signals or {}).get("presence")
    if value is None:
        return 1
    if isinstance(value, bool):
        return 1 if value else 0
    number = to_number(value)
    if number is None:
        return 1
    return 1 if number == 1 else 0


class PresenceTracker:
    """Store de entradas por dispositivo con serialización por clave."""

    def __init__(self, lock: Optional[KeyedLock] = None):
        self._lock = lock or KeyedLock()
        self._entries: Dict[str, TrackerEntry] = {}

    @contextmanager
    def device(self, device_id: str) -> Iterator[TrackerEntry]:
        """Mantiene el lock del dispositivo mientras se usa su entrada."""
        with self._lock.hold(device_id):
            # dict.setdefault es atómico entre stripes
            entry = self._entries.setdefault(device_id, TrackerEntry())
            yield entry

    def observe_presence(self, entry: TrackerEntry, presence: int) -> PresenceTransition:
        """Registra la presencia y retorna la transición ocurrida."""
        previous = entry.last_presence
        entry.last_presence = presence

        if previous == 1 and presence == 0:
            return PresenceTransition.DROPPED
        if previous == 0 and presence == 1:
            return PresenceTransition.RESUMED
        return PresenceTransition.NONE

    def evaluate(
        self,
        entry: TrackerEntry,
        rules: Mapping[str, MetricRule],
        lookup: Callable[[str], Any],
    ) -> RuleDecision:
        """Evalúa límites y dedupe. No modifica la línea base."""
        if not rules:
            return RuleDecision(accepted=True)

        violations: List[str] = []
        changed: Dict[str, Any] = {}

        for name, rule in rules.items():
            value = lookup(name)
            if value is None:
                continue

            number = to_number(value)
            if number is not None:
                label = rule.violation_label(name, number)
                if label:
                    violations.append(label)
                    continue

            if rule.mode == DedupeMode.ON_CHANGE:
                if name in entry.last_values and entry.last_values[name] == value:
                    continue
            changed[name] = value

        if violations:
            return RuleDecision(
                accepted=False,
                reason=RejectReason.OUT_OF_RANGE,
                violations=violations,
            )
        if not changed:
            return RuleDecision(accepted=False, reason=RejectReason.UNCHANGED)
        return RuleDecision(accepted=True, changed=changed)

    def commit(self, entry: TrackerEntry, decision: RuleDecision) -> None:
        """Actualiza la línea base con las métricas cambiadas de un mensaje aceptado."""
        if decision.accepted:
            entry.last_values.update(decision.changed)

    def snapshot(self, device_id: str) -> Optional[TrackerEntry]:
        """Copia del estado de un dispositivo (diagnóstico)."""
        with self._lock.hold(device_id):
            entry = self._entries.get(device_id)
            if entry is None:
                return None
            return TrackerEntry(
                last_presence=entry.last_presence,
                last_values=dict(entry.last_values),
            )

    def get_stats(self) -> dict:
        return {
            "tracked_devices": len(self._entries),
            "lock_stripes": self._lock.stripes,
        }
