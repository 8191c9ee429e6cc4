from .health_record import (
    FIELD_ALIASES,
    FLAT_VITALS,
    SIGNAL_DEFAULTS,
    build_base_record,
    build_health_candidate,
    lookup_metric,
)
from .ingestion import (
    IngestionPipeline,
    IngestKind,
    IngestOutcome,
    IngestStatus,
    parse_kind,
)

__all__ = [
    "FIELD_ALIASES",
    "FLAT_VITALS",
    "SIGNAL_DEFAULTS",
    "IngestKind",
    "IngestOutcome",
    "IngestStatus",
    "IngestionPipeline",
    "build_base_record",
    "build_health_candidate",
    "lookup_metric",
    "parse_kind",
]
