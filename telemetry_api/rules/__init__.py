"""Reglas estáticas por tipo de dispositivo y tabla de métricas extra."""

from .extra_metrics import EXTRA_METRICS, collect_extra_metrics
from .metric_spec import DEFAULT_SPEC, DedupeMode, MetricRule, RuleTable

__all__ = [
    "DEFAULT_SPEC",
    "DedupeMode",
    "EXTRA_METRICS",
    "MetricRule",
    "RuleTable",
    "collect_extra_metrics",
]
