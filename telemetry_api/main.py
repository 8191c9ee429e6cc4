from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from common.config import get_settings
from common.db import get_engine

from .endpoints import devices_router, health_router, ingest_router, mqtt_router
from .mqtt import start_receiver, stop_receiver
from .persistence import ensure_schema
from .services import get_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    ensure_schema(get_engine())

    if settings.mqtt_enabled:
        start_receiver(get_pipeline(), settings)
    else:
        logger.info("[MQTT] Receiver disabled (MQTT_INGEST_ENABLED=false)")

    try:
        yield
    finally:
        stop_receiver()


app = FastAPI(title="Health Telemetry Ingest Service", version="1.0.0", lifespan=lifespan)

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(devices_router)
app.include_router(mqtt_router)
