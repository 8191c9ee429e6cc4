"""Métricas Prometheus de ingesta."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MESSAGES_TOTAL = Counter(
    "telemetry_messages_total",
    "Telemetry messages handled",
    ["transport", "kind", "outcome"],  # outcome: stored, skipped, not_found, invalid, error
)

RECORDS_PERSISTED = Counter(
    "telemetry_records_persisted_total",
    "Telemetry records written",
    ["kind"],
)

RECORDS_RETRACTED = Counter(
    "telemetry_records_retracted_total",
    "Health records deleted by presence-drop retraction",
)

QUEUE_DROPS = Counter(
    "telemetry_queue_drops_total",
    "MQTT messages dropped because a worker queue was full",
)

PROCESSING_LATENCY = Histogram(
    "telemetry_processing_seconds",
    "Pipeline processing latency",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

MQTT_CONNECTED = Gauge(
    "telemetry_mqtt_connected",
    "MQTT receiver connection status",
)
