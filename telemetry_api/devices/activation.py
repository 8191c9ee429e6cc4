"""Máquina de estados de activación de dispositivos.

Estados: inactive, active, under maintenance.

Reglas:
- Un perfil tiene como máximo un dispositivo activo por la vía de activación
- activate(): conflicto si el dispositivo ya está activo en OTRO perfil;
  si no, desactiva todo lo ligado al perfil y activa el objetivo en una sola
  transacción, bajo el lock del perfil (y del dispositivo)
- deactivate(): solo el dueño; saca el dispositivo del set activo del usuario
- update(): pasar a active es conflicto si el perfil ya tiene otro activo
- update()/delete(): limpian el puntero active_device_id del dueño cuando el
  dispositivo queda inactivo o desaparece

Nota: la telemetría marca dispositivos como activos sin pasar por aquí (solo
status + last_active_at), así que un perfil puede ver más de uno con el flag.
``active_device()`` devuelve el más reciente.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.engine import Engine

from ..errors import ConflictError, NotFoundError, ValidationError
from ..persistence import DeviceRepository, ProfileRepository, UserRepository
from ..tracking import KeyedLock
from .models import (
    UPDATABLE_FIELDS,
    DeviceStatus,
    clean_device_id,
    device_to_api,
    normalize_device_id,
    normalize_status,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class DeviceActivationManager:
    """Transiciones de estado de dispositivos ligadas a perfiles y usuarios."""

    def __init__(
        self,
        engine: Engine,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._engine = engine
        self._locks = locks or KeyedLock()
        self._clock = clock

    # ------------------------------------------------------------------
    # Activación por perfil
    # ------------------------------------------------------------------

    def activate(self, device_id: str, profile_id: Optional[str]) -> Dict[str, Any]:
        """Activa el dispositivo en el perfil (exclusivo por perfil).

        Raises:
            ValidationError: profileId ausente
            NotFoundError: dispositivo desconocido
            ConflictError: activo en otro perfil
        """
        profile_id = str(profile_id or "").strip()
        if not profile_id:
            raise ValidationError("profileId is required")
        device_id = clean_device_id(device_id)

        with self._locks.hold_many(f"profile:{profile_id}", f"device:{device_id}"):
            with self._engine.begin() as conn:
                devices = DeviceRepository(conn)
                profiles = ProfileRepository(conn)

                device = devices.get(device_id)
                if device is None:
                    raise NotFoundError(f"Device {device_id} not found")

                current_profile = device.get("profile_id")
                if (
                    device.get("status") == DeviceStatus.ACTIVE.value
                    and current_profile
                    and current_profile != profile_id
                ):
                    raise ConflictError(
                        f'Device {device_id} is already active on profile '
                        f'"{profiles.identifier_of(current_profile)}"'
                    )

                deactivated = devices.deactivate_profile(profile_id)
                devices.activate_on_profile(device_id, profile_id, self._clock())

                owner = device.get("user_id")
                if owner:
                    UserRepository(conn).set_active_device(owner, device_id)

                identifier = profiles.identifier_of(profile_id)

        logger.info(
            "[ACTIVATION] device=%s profile=%s deactivated_others=%d",
            device_id,
            profile_id,
            deactivated,
        )
        return {
            "message": f'Device {device_id} activated on profile "{identifier}"',
            "deviceId": device_id,
            "profileId": profile_id,
            "status": DeviceStatus.ACTIVE.value,
        }

    # ------------------------------------------------------------------
    # Set de dispositivos activos del usuario
    # ------------------------------------------------------------------

    def deactivate(self, device_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        """Pone inactivo un dispositivo del usuario."""
        device_id = clean_device_id(device_id)
        with self._locks.hold(f"device:{device_id}"):
            with self._engine.begin() as conn:
                devices, users = DeviceRepository(conn), UserRepository(conn)
                self._require_user(users, user_id)
                device = devices.get(device_id)
                if device is None or device.get("user_id") != user_id:
                    raise NotFoundError(f"Device {device_id} not found for this user")

                devices.update_columns(device_id, {"status": DeviceStatus.INACTIVE.value})
                users.remove_active_device(user_id, device_id)

        logger.info("[ACTIVATION] device=%s set inactive by user=%s", device_id, user_id)
        return {"message": "Device set to inactive", "deviceId": device_id}

    def attach_user_active(self, device_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        """Marca activo y lo agrega al set del usuario (sin lógica de perfil)."""
        device_id = clean_device_id(device_id)
        with self._locks.hold(f"device:{device_id}"):
            with self._engine.begin() as conn:
                devices, users = DeviceRepository(conn), UserRepository(conn)
                self._require_user(users, user_id)
                if devices.get(device_id) is None:
                    raise NotFoundError(f"Device {device_id} not found")

                devices.update_columns(
                    device_id,
                    {"status": DeviceStatus.ACTIVE.value, "user_id": user_id},
                )
                users.add_active_device(user_id, device_id)
                active = users.active_devices(user_id)

        logger.info("[ACTIVATION] device=%s attached to user=%s", device_id, user_id)
        return {
            "message": "Device set to active",
            "deviceId": device_id,
            "activeDevices": active,
        }

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    def update(self, device_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Actualiza campos permitidos; los demás se ignoran.

        Pasar a ``active`` un dispositivo ligado a un perfil que ya tiene
        otro dispositivo activo es ConflictError.
        """
        device_id = clean_device_id(device_id)
        values = self._normalize_update(fields)
        if not values:
            raise ValidationError("No updatable fields provided")
        new_id = values.get("device_id", device_id)

        while True:
            profile_id = self._profile_of(device_id)
            keys = [f"device:{device_id}", f"device:{new_id}"]
            if profile_id:
                keys.append(f"profile:{profile_id}")
            with self._locks.hold_many(*keys):
                updated = self._apply_update(device_id, new_id, values, profile_id)
            if updated is not None:
                break
            # activate() movió el dispositivo de perfil entre lectura y lock
            logger.debug("[ACTIVATION] device=%s profile changed, retrying update", device_id)

        logger.info("[ACTIVATION] device=%s updated fields=%s", device_id, sorted(values))
        return device_to_api(updated)

    def _apply_update(
        self,
        device_id: str,
        new_id: str,
        values: Mapping[str, Any],
        profile_id: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """None si el perfil ya no es ``profile_id`` (hay que reintentar)."""
        with self._engine.begin() as conn:
            devices, users = DeviceRepository(conn), UserRepository(conn)
            device = devices.get(device_id)
            if device is None:
                raise NotFoundError(f"Device {device_id} not found")
            if device.get("profile_id") != profile_id:
                return None

            if new_id != device_id and devices.exists(new_id):
                raise ConflictError(f"Device {new_id} already exists")

            if values.get("status") == DeviceStatus.ACTIVE.value and profile_id:
                other = devices.other_active_on_profile(profile_id, device_id)
                if other:
                    identifier = ProfileRepository(conn).identifier_of(profile_id)
                    raise ConflictError(
                        f'Profile "{identifier}" already has active device {other}'
                    )

            devices.update_columns(device_id, values)
            if new_id != device_id:
                users.rename_device_everywhere(device_id, new_id)

            owner = values["user_id"] if "user_id" in values else device.get("user_id")
            if values.get("status") == DeviceStatus.INACTIVE.value and owner:
                users.clear_active_pointer(owner, new_id)

            return devices.get(new_id)

    def delete(self, device_id: str) -> Dict[str, Any]:
        """Elimina el dispositivo tras limpiar las referencias de usuarios."""
        device_id = clean_device_id(device_id)
        with self._locks.hold(f"device:{device_id}"):
            with self._engine.begin() as conn:
                devices = DeviceRepository(conn)
                if devices.get(device_id) is None:
                    raise NotFoundError(f"Device {device_id} not found")
                UserRepository(conn).detach_device_everywhere(device_id)
                devices.delete(device_id)

        logger.info("[ACTIVATION] device=%s deleted", device_id)
        return {"message": "Device deleted successfully", "deviceId": device_id}

    # ------------------------------------------------------------------
    # Consultas por perfil
    # ------------------------------------------------------------------

    def mapping(self, profile_id: str) -> List[Dict[str, Any]]:
        with self._engine.connect() as conn:
            rows = DeviceRepository(conn).list_for_profile(profile_id)
        return [
            {
                "deviceId": row["device_id"],
                "status": row["status"],
                "active": row["status"] == DeviceStatus.ACTIVE.value,
            }
            for row in rows
        ]

    def active_device(self, profile_id: str) -> Optional[str]:
        with self._engine.connect() as conn:
            return DeviceRepository(conn).active_for_profile(profile_id)

    # ------------------------------------------------------------------

    def _profile_of(self, device_id: str) -> Optional[str]:
        with self._engine.connect() as conn:
            device = DeviceRepository(conn).get(device_id)
        return device.get("profile_id") if device else None

    @staticmethod
    def _require_user(users: UserRepository, user_id: Optional[str]) -> Dict[str, Any]:
        user = users.get(user_id) if user_id else None
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _normalize_update(fields: Mapping[str, Any]) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name, column in UPDATABLE_FIELDS.items():
            if name not in fields:
                continue
            raw = fields[name]

            if name == "deviceId":
                values[column] = normalize_device_id(raw)
            elif name == "status":
                values[column] = normalize_status(raw).value
            elif name in ("validity", "lastActiveAt"):
                values[column] = parse_timestamp(raw)
            elif name == "profileVersion":
                try:
                    values[column] = int(raw)
                except (TypeError, ValueError):
                    raise ValidationError(f"Invalid profileVersion: {raw!r}") from None
            elif name in ("deviceType", "manufacturer"):
                if raw is None or not str(raw).strip():
                    raise ValidationError(f"{name} cannot be empty")
                values[column] = str(raw).strip()
            else:
                values[column] = str(raw).strip() if raw is not None else None
        return values
