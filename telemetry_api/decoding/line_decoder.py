"""Decodificador de líneas de telemetría (formato UART CSV).

Cada línea es ``TAG,v1,v2,...``. El TAG fija la aridad y el orden de los
campos. El decodificador NUNCA lanza excepciones: un valor que no es un
número finito queda ausente (``None``), nunca cero, y un TAG desconocido se
conserva solo como texto crudo de auditoría.

Ejemplos:
    HRV_DATA,812,45.1,38.2,12.5,74,9.1,210,27.0,60.3,410,380,1.08,1.6,0.45,0.8,-0.3
    TEMP_HUM,36.4,41
    PRESENCE,1
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

# Orden posicional de HRV_DATA (16 valores después del tag)
HRV_FIELDS: tuple[str, ...] = (
    "mean_rr",
    "sdnn",
    "rmssd",
    "pnn50",
    "hr_median",
    "rr_tri_index",
    "tin_rmssd",
    "sd1",
    "sd2",
    "lf",
    "hf",
    "lfhf",
    "sample_entropy",
    "sd1sd2",
    "sns_index",
    "pns_index",
)

# Tags de un solo valor que van a campos planos
_FLAT_SINGLE: dict[str, str] = {
    "HR": "heartRate",
    "RES": "respiration",
    "STRESS": "stress",
}

# Tags de un solo valor numérico que van a signals
_SIGNAL_NUMERIC: dict[str, str] = {
    "ACT": "activity",
    "ACTIVITY": "activity",
    "BAT": "battery",
    "MIC": "mic",
}

# Tags booleanos (true sii el valor es 1)
_SIGNAL_FLAGS: dict[str, str] = {
    "MOTION": "motion",
    "PRESENCE": "presence",
}


def to_number(value: Any) -> Optional[float]:
    """Convierte a float finito; cualquier otra cosa queda ausente."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_flag(value: Any) -> Optional[bool]:
    """Booleano posicional: presente solo si el valor es numérico."""
    number = to_number(value)
    if number is None:
        return None
    return number == 1


@dataclass
class DecodedLine:
    """Registro parcial producido por una línea."""

    tag: str
    raw: str
    recognized: bool = True
    patch: dict[str, Optional[float]] = field(default_factory=dict)
    metrics: dict[str, Optional[float]] = field(default_factory=dict)
    signals: dict[str, Any] = field(default_factory=dict)


@dataclass
class DecodedBundle:
    """Resultado de fusionar varias líneas de izquierda a derecha."""

    patch: dict[str, float] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)
    signals: dict[str, Any] = field(default_factory=dict)
    raws: list[str] = field(default_factory=list)

    @property
    def raw_text(self) -> Optional[str]:
        return "\n".join(self.raws) if self.raws else None


def _positional(parts: list[str], index: int) -> Optional[str]:
    return parts[index] if index < len(parts) else None


def decode_line(line: Any) -> Optional[DecodedLine]:
    """Decodifica una línea. Retorna None solo si la línea está vacía."""
    if not isinstance(line, str) or not line.strip():
        return None

    raw = line.strip()
    parts = [p.strip() for p in raw.split(",")]
    tag = parts[0].upper()
    decoded = DecodedLine(tag=tag, raw=raw)

    if tag == "HRV_DATA":
        # Aridad corta: se rechaza el tag completo
        if len(parts) >= len(HRV_FIELDS) + 1:
            for name, value in zip(HRV_FIELDS, parts[1:]):
                decoded.metrics[name] = to_number(value)
            # Campos planos legacy
            if decoded.metrics["rmssd"] is not None:
                decoded.patch["hrv"] = decoded.metrics["rmssd"]
            if decoded.metrics["hr_median"] is not None:
                decoded.patch["heartRate"] = decoded.metrics["hr_median"]

    elif tag == "TEMP_HUM":
        decoded.patch["temperature"] = to_number(_positional(parts, 1))
        decoded.patch["humidity"] = to_number(_positional(parts, 2))

    elif tag in _FLAT_SINGLE:
        decoded.patch[_FLAT_SINGLE[tag]] = to_number(_positional(parts, 1))

    elif tag in _SIGNAL_FLAGS:
        decoded.signals[_SIGNAL_FLAGS[tag]] = to_flag(_positional(parts, 1))

    elif tag in _SIGNAL_NUMERIC:
        decoded.signals[_SIGNAL_NUMERIC[tag]] = to_number(_positional(parts, 1))

    elif tag == "RR":
        # Muestra RR cruda opcional: no aporta campos
        pass

    else:
        decoded.recognized = False

    return decoded


def _assign_present(target: dict[str, Any], source: dict[str, Any]) -> None:
    for key, value in source.items():
        if value is not None:
            target[key] = value


def decode_lines(lines: Iterable[Any]) -> DecodedBundle:
    """Decodifica y fusiona líneas por categoría; la última gana."""
    bundle = DecodedBundle()
    for line in lines:
        if line is None:
            continue
        decoded = decode_line(line if isinstance(line, str) else str(line))
        if decoded is None:
            continue
        _assign_present(bundle.patch, decoded.patch)
        _assign_present(bundle.metrics, decoded.metrics)
        _assign_present(bundle.signals, decoded.signals)
        bundle.raws.append(decoded.raw)
    return bundle


def extract_lines(payload: dict[str, Any]) -> list[Any]:
    """Obtiene ``lines`` (lista) o ``line`` (única) del payload."""
    lines = payload.get("lines")
    if isinstance(lines, list):
        return lines
    line = payload.get("line")
    return [line] if line else []
