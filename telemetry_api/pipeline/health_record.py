"""Construcción del registro candidato de salud.

Orden de fusión:
1. Campos planos del payload (con alias ``resp``/``hr``)
2. Patch de las líneas decodificadas (sobrescribe)
3. metrics: bolsa del payload → métricas de líneas → métricas extra
4. signals: defaults → signals del payload → signals de líneas
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..decoding import decode_lines, extract_lines, to_number
from ..rules import collect_extra_metrics

FLAT_VITALS: tuple[str, ...] = (
    "temperature",
    "humidity",
    "iaq",
    "eco2",
    "tvoc",
    "etoh",
    "hrv",
    "stress",
    "respiration",
    "heartRate",
)

# Nombre canónico → claves aceptadas en el payload (la primera presente gana)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "respiration": ("resp", "respiration"),
    "heartRate": ("hr", "heartRate"),
}

SIGNAL_DEFAULTS: dict[str, Any] = {
    "motion": None,
    "presence": None,
    "battery": None,
    "activity": None,
    "mic": None,
    "rrIntervals": [],
    "rawWaveform": [],
}


def _first_present(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def build_base_record(payload: Mapping[str, Any]) -> Dict[str, Optional[float]]:
    """Campos planos del payload; ausente o no numérico queda en None."""
    record: Dict[str, Optional[float]] = {}
    for name in FLAT_VITALS:
        keys = FIELD_ALIASES.get(name, (name,))
        record[name] = to_number(_first_present(payload, keys))
    return record


def _dict_or_empty(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def build_health_candidate(device_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Registro candidato (sin timestamp) listo para presencia y reglas."""
    record: Dict[str, Any] = {"deviceId": device_id}
    record.update(build_base_record(payload))

    bundle = decode_lines(extract_lines(dict(payload)))
    record.update(bundle.patch)

    metrics = _dict_or_empty(payload.get("metrics"))
    metrics.update(bundle.metrics)
    metrics.update(collect_extra_metrics(payload))
    record["metrics"] = metrics

    signals = dict(SIGNAL_DEFAULTS)
    # Listas nuevas por registro
    signals["rrIntervals"] = []
    signals["rawWaveform"] = []
    signals.update(_dict_or_empty(payload.get("signals")))
    signals.update(bundle.signals)
    record["signals"] = signals

    raw = bundle.raw_text
    if raw is None and isinstance(payload.get("raw"), str):
        raw = payload["raw"]
    record["raw"] = raw

    return record


def lookup_metric(record: Mapping[str, Any], name: str) -> Any:
    """Valor de una métrica: campo plano → metrics → signals."""
    value = record.get(name) if name in FLAT_VITALS else None
    if value is not None:
        return value
    value = (record.get("metrics") or {}).get(name)
    if value is not None:
        return value
    return (record.get("signals") or {}).get(name)
