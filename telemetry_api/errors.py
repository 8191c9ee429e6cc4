"""Taxonomía de errores del servicio de telemetría.

Las operaciones de dominio lanzan estas excepciones; los endpoints HTTP las
traducen con ``to_http_exception``. El camino MQTT no tiene canal de respuesta,
así que allí solo se registran en el log.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class TelemetryError(Exception):
    """Error base del servicio."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(TelemetryError):
    """Dispositivo, perfil o usuario desconocido."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(TelemetryError):
    """Violación de exclusividad de perfil o identificador duplicado."""

    status_code = status.HTTP_409_CONFLICT


class ValidationError(TelemetryError):
    """Identificador mal formado o campos requeridos ausentes."""

    status_code = status.HTTP_400_BAD_REQUEST


class InternalError(TelemetryError):
    """Fallo de almacenamiento o transporte."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(exc: TelemetryError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
