from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _default_env_file() -> str:
    repo_root = Path(__file__).resolve().parents[1]
    return str(repo_root / ".env")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str

    mqtt_enabled: bool
    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_username: str | None
    mqtt_password: str | None
    mqtt_client_id: str
    mqtt_num_workers: int
    mqtt_queue_size: int

    retraction_window_seconds: float
    metric_spec_file: str | None
    tracker_lock_stripes: int

    log_level: str


def get_settings() -> Settings:
    # El archivo .env es opcional; las variables reales del entorno tienen prioridad.
    env_file = os.getenv("TELEMETRY_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./telemetry.db"),
        mqtt_enabled=_env_flag("MQTT_INGEST_ENABLED", "false"),
        mqtt_broker_host=os.getenv("MQTT_BROKER_HOST", "localhost"),
        mqtt_broker_port=int(os.getenv("MQTT_BROKER_PORT", "1883")),
        mqtt_username=os.getenv("MQTT_USERNAME") or None,
        mqtt_password=os.getenv("MQTT_PASSWORD") or None,
        mqtt_client_id=os.getenv("MQTT_CLIENT_ID", "telemetry-ingest"),
        mqtt_num_workers=int(os.getenv("MQTT_NUM_WORKERS", "4")),
        mqtt_queue_size=int(os.getenv("MQTT_QUEUE_SIZE", "1000")),
        retraction_window_seconds=float(os.getenv("RETRACTION_WINDOW_SECONDS", "12")),
        metric_spec_file=os.getenv("METRIC_SPEC_FILE") or None,
        tracker_lock_stripes=int(os.getenv("TRACKER_LOCK_STRIPES", "64")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
