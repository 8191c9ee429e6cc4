"""Claves de métricas extra que se copian tal cual del payload al metric bag.

Tabla estática nombre en payload → nombre en el metric bag. Para agregar una
métrica basta con extender la tabla, sin tocar el pipeline.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping

_EXTRA_METRIC_NAMES: tuple[str, ...] = (
    # HRV extendido
    "nn50", "sdsd", "mxdmn", "mo", "amo", "stress_ind",
    "lf_pow", "hf_pow", "lf_hf_ratio", "bat", "mean_rr", "mean_hr",
    "sdnn", "rmssd", "pnn50", "hr_median", "rr_tri_index", "tin_rmssd",
    "sd1", "sd2", "lf", "hf", "lfhf", "sample_entropy", "sd1sd2",
    "sns_index", "pns_index",
    # Ambiente / sueño
    "snore_num", "snore_freq", "pressure", "bvoc", "co2", "gas_percent",
    # Fisiología extendida
    "HRrest", "HRmax", "VO2max", "LactateThres", "TemperatureSkin",
    "TemperatureEnv", "TemperatureCore", "ECG", "Barometer",
    "BloodPressureSys", "BloodPressureDia", "MuscleOxygenation", "GSR",
    # Movimiento / postura
    "Accel", "Gyro", "Magneto", "Steps", "Calories", "Distance",
    "PostureFront", "PostureSide", "Fall", "Sports", "Start", "End",
    # Sueño y marcadores clínicos
    "SleepStage", "SleepQuality", "BMI", "BodyIndex", "ABSI",
    "NormalSinusRhythm", "CHFAnalysis", "Diabetes", "TMT",
)

EXTRA_METRICS: Mapping[str, str] = MappingProxyType(
    {name: name for name in _EXTRA_METRIC_NAMES}
)


def collect_extra_metrics(
    payload: Mapping[str, Any],
    table: Mapping[str, str] = EXTRA_METRICS,
) -> dict[str, Any]:
    """Copia las claves de la tabla presentes en el payload (valor literal)."""
    return {
        target: payload[source]
        for source, target in table.items()
        if source in payload and payload[source] is not None
    }
