"""Repositorios SQL (text()) sobre una Connection.

Cada repositorio envuelve la conexión/transacción que recibe; quien lo crea
decide el límite de la transacción (``engine.begin()``).
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import orjson
from sqlalchemy import text
from sqlalchemy.engine import Connection

from ..errors import ValidationError


def _row_dict(row) -> Optional[Dict[str, Any]]:
    return dict(row._mapping) if row is not None else None


def dumps_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return orjson.dumps(value).decode("utf-8")


def loads_json(value: Optional[str]) -> Any:
    if not value:
        return None
    return orjson.loads(value)


# Columnas de devices que se pueden escribir desde update()
DEVICE_MUTABLE_COLUMNS: frozenset[str] = frozenset({
    "device_id",
    "device_type",
    "manufacturer",
    "firmware_version",
    "location",
    "status",
    "validity",
    "user_id",
    "device_model_id",
    "profile_version",
    "last_active_at",
})


class DeviceRepository:
    """Acceso a la tabla devices."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def get(self, device_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            text("SELECT * FROM devices WHERE device_id = :device_id"),
            {"device_id": device_id},
        ).fetchone()
        return _row_dict(row)

    def exists(self, device_id: str) -> bool:
        row = self._conn.execute(
            text("SELECT 1 FROM devices WHERE device_id = :device_id"),
            {"device_id": device_id},
        ).fetchone()
        return row is not None

    def get_device_type(self, device_id: str) -> Optional[str]:
        """Tipo del dispositivo o None si no existe."""
        row = self._conn.execute(
            text("SELECT device_type FROM devices WHERE device_id = :device_id"),
            {"device_id": device_id},
        ).fetchone()
        return row.device_type if row else None

    def insert(self, device: Mapping[str, Any]) -> None:
        self._conn.execute(
            text("""
                INSERT INTO devices (
                    device_id, device_type, manufacturer, firmware_version,
                    location, status, profile_id, user_id, account_id,
                    device_model_id, profile_version, validity,
                    last_active_at, created_at
                ) VALUES (
                    :device_id, :device_type, :manufacturer, :firmware_version,
                    :location, :status, :profile_id, :user_id, :account_id,
                    :device_model_id, :profile_version, :validity,
                    :last_active_at, :created_at
                )
            """),
            {
                "device_id": device["device_id"],
                "device_type": device["device_type"],
                "manufacturer": device["manufacturer"],
                "firmware_version": device.get("firmware_version"),
                "location": device.get("location"),
                "status": device.get("status", "inactive"),
                "profile_id": device.get("profile_id"),
                "user_id": device.get("user_id"),
                "account_id": device.get("account_id"),
                "device_model_id": device.get("device_model_id"),
                "profile_version": device.get("profile_version", 1),
                "validity": device.get("validity"),
                "last_active_at": device.get("last_active_at"),
                "created_at": device["created_at"],
            },
        )

    def mark_seen(self, device_id: str, ts: float) -> bool:
        """Marca el dispositivo activo y refresca last_active_at."""
        result = self._conn.execute(
            text("""
                UPDATE devices SET status = 'active', last_active_at = :ts
                WHERE device_id = :device_id
            """),
            {"device_id": device_id, "ts": ts},
        )
        return result.rowcount > 0

    def update_columns(self, device_id: str, values: Mapping[str, Any]) -> int:
        unknown = set(values) - DEVICE_MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not writable: {sorted(unknown)}")
        if not values:
            return 0

        assignments = ", ".join(f"{col} = :{col}" for col in values)
        params = dict(values)
        params["_target"] = device_id
        result = self._conn.execute(
            text(f"UPDATE devices SET {assignments} WHERE device_id = :_target"),
            params,
        )
        return result.rowcount

    def delete(self, device_id: str) -> int:
        result = self._conn.execute(
            text("DELETE FROM devices WHERE device_id = :device_id"),
            {"device_id": device_id},
        )
        return result.rowcount

    def deactivate_profile(self, profile_id: str) -> int:
        """Pone inactivos todos los dispositivos ligados al perfil."""
        result = self._conn.execute(
            text("""
                UPDATE devices SET status = 'inactive'
                WHERE profile_id = :profile_id AND status <> 'inactive'
            """),
            {"profile_id": profile_id},
        )
        return result.rowcount

    def activate_on_profile(self, device_id: str, profile_id: str, ts: float) -> None:
        self._conn.execute(
            text("""
                UPDATE devices
                SET status = 'active', profile_id = :profile_id, last_active_at = :ts
                WHERE device_id = :device_id
            """),
            {"device_id": device_id, "profile_id": profile_id, "ts": ts},
        )

    def list_for_profile(self, profile_id: str) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            text("""
                SELECT device_id, status, last_active_at FROM devices
                WHERE profile_id = :profile_id
                ORDER BY device_id
            """),
            {"profile_id": profile_id},
        ).fetchall()
        return [dict(r._mapping) for r in rows]

    def active_for_profile(self, profile_id: str) -> Optional[str]:
        """Dispositivo activo más reciente del perfil."""
        row = self._conn.execute(
            text("""
                SELECT device_id FROM devices
                WHERE profile_id = :profile_id AND status = 'active'
                ORDER BY last_active_at DESC
                LIMIT 1
            """),
            {"profile_id": profile_id},
        ).fetchone()
        return row.device_id if row else None

    def other_active_on_profile(self, profile_id: str, device_id: str) -> Optional[str]:
        row = self._conn.execute(
            text("""
                SELECT device_id FROM devices
                WHERE profile_id = :profile_id AND status = 'active'
                  AND device_id <> :device_id
                LIMIT 1
            """),
            {"profile_id": profile_id, "device_id": device_id},
        ).fetchone()
        return row.device_id if row else None


class UserRepository:
    """Referencias de usuario a dispositivos (filas de otro sistema)."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            text("SELECT * FROM users WHERE user_id = :user_id"),
            {"user_id": user_id},
        ).fetchone()
        return _row_dict(row)

    def set_active_device(self, user_id: str, device_id: Optional[str]) -> None:
        self._conn.execute(
            text("UPDATE users SET active_device_id = :device_id WHERE user_id = :user_id"),
            {"user_id": user_id, "device_id": device_id},
        )

    def clear_active_pointer(self, user_id: str, device_id: str) -> int:
        """Limpia active_device_id solo si apunta a este dispositivo."""
        result = self._conn.execute(
            text("""
                UPDATE users SET active_device_id = NULL
                WHERE user_id = :user_id AND active_device_id = :device_id
            """),
            {"user_id": user_id, "device_id": device_id},
        )
        return result.rowcount

    def active_devices(self, user_id: str) -> List[str]:
        rows = self._conn.execute(
            text("""
                SELECT device_id FROM user_active_devices
                WHERE user_id = :user_id ORDER BY device_id
            """),
            {"user_id": user_id},
        ).fetchall()
        return [r.device_id for r in rows]

    def add_active_device(self, user_id: str, device_id: str) -> None:
        exists = self._conn.execute(
            text("""
                SELECT 1 FROM user_active_devices
                WHERE user_id = :user_id AND device_id = :device_id
            """),
            {"user_id": user_id, "device_id": device_id},
        ).fetchone()
        if exists is None:
            self._conn.execute(
                text("""
                    INSERT INTO user_active_devices (user_id, device_id)
                    VALUES (:user_id, :device_id)
                """),
                {"user_id": user_id, "device_id": device_id},
            )

    def remove_active_device(self, user_id: str, device_id: str) -> int:
        result = self._conn.execute(
            text("""
                DELETE FROM user_active_devices
                WHERE user_id = :user_id AND device_id = :device_id
            """),
            {"user_id": user_id, "device_id": device_id},
        )
        return result.rowcount

    def add_owned_device(self, user_id: str, device_id: str) -> None:
        exists = self._conn.execute(
            text("""
                SELECT 1 FROM user_devices
                WHERE user_id = :user_id AND device_id = :device_id
            """),
            {"user_id": user_id, "device_id": device_id},
        ).fetchone()
        if exists is None:
            self._conn.execute(
                text("INSERT INTO user_devices (user_id, device_id) VALUES (:user_id, :device_id)"),
                {"user_id": user_id, "device_id": device_id},
            )

    def detach_device_everywhere(self, device_id: str) -> None:
        """Quita el dispositivo de punteros y sets de todos los usuarios."""
        params = {"device_id": device_id}
        self._conn.execute(
            text("UPDATE users SET active_device_id = NULL WHERE active_device_id = :device_id"),
            params,
        )
        self._conn.execute(
            text("DELETE FROM user_active_devices WHERE device_id = :device_id"),
            params,
        )
        self._conn.execute(
            text("DELETE FROM user_devices WHERE device_id = :device_id"),
            params,
        )

    def rename_device_everywhere(self, old_id: str, new_id: str) -> None:
        params = {"old_id": old_id, "new_id": new_id}
        for statement in (
            "UPDATE users SET active_device_id = :new_id WHERE active_device_id = :old_id",
            "UPDATE user_active_devices SET device_id = :new_id WHERE device_id = :old_id",
            "UPDATE user_devices SET device_id = :new_id WHERE device_id = :old_id",
        ):
            self._conn.execute(text(statement), params)


class ProfileRepository:
    def __init__(self, conn: Connection):
        self._conn = conn

    def get(self, profile_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            text("SELECT profile_id, identifier FROM profiles WHERE profile_id = :profile_id"),
            {"profile_id": profile_id},
        ).fetchone()
        return _row_dict(row)

    def identifier_of(self, profile_id: str) -> str:
        """Identificador legible del perfil; si no existe, el propio id."""
        profile = self.get(profile_id)
        if profile and profile.get("identifier"):
            return str(profile["identifier"])
        return str(profile_id)


class PrefixRepository:
    """Asignador secuencial de ids por prefijo."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def get(self, prefix_id: str) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(
            text("SELECT * FROM device_prefixes WHERE prefix_id = :prefix_id"),
            {"prefix_id": prefix_id},
        ).fetchone()
        return _row_dict(row)

    def next_sequence(self, prefix_id: str) -> Optional[Dict[str, Any]]:
        """Incrementa la secuencia y retorna la fila actualizada.

        El UPDATE toma el lock de escritura de la fila, así que dentro de la
        misma transacción el SELECT posterior ve el valor propio.
        """
        result = self._conn.execute(
            text("""
                UPDATE device_prefixes SET sequence = sequence + 1
                WHERE prefix_id = :prefix_id
            """),
            {"prefix_id": prefix_id},
        )
        if result.rowcount == 0:
            return None
        return self.get(prefix_id)


# Campos planos: nombre en el registro → columna
HEALTH_FLAT_COLUMNS: dict[str, str] = {
    "temperature": "temperature",
    "humidity": "humidity",
    "iaq": "iaq",
    "eco2": "eco2",
    "tvoc": "tvoc",
    "etoh": "etoh",
    "hrv": "hrv",
    "stress": "stress",
    "respiration": "respiration",
    "heartRate": "heart_rate",
}


class TelemetryRepository:
    """Registros de salud y sueño."""

    def __init__(self, conn: Connection):
        self._conn = conn

    def insert_health(self, record: Mapping[str, Any]) -> None:
        try:
            metrics = dumps_json(record.get("metrics") or {})
            signals = dumps_json(record.get("signals") or {})
        except (TypeError, orjson.JSONEncodeError) as e:
            raise ValidationError(f"Unserializable metric value: {e}") from None

        params: Dict[str, Any] = {
            column: record.get(name) for name, column in HEALTH_FLAT_COLUMNS.items()
        }
        params.update({
            "device_id": record["deviceId"],
            "ts": record["ts"],
            "presence": int(record.get("presence", 1)),
            "metrics": metrics,
            "signals": signals,
            "raw": record.get("raw"),
        })
        self._conn.execute(
            text("""
                INSERT INTO health_data (
                    device_id, ts, temperature, humidity, iaq, eco2, tvoc, etoh,
                    hrv, stress, respiration, heart_rate, presence,
                    metrics, signals, raw
                ) VALUES (
                    :device_id, :ts, :temperature, :humidity, :iaq, :eco2, :tvoc, :etoh,
                    :hrv, :stress, :respiration, :heart_rate, :presence,
                    :metrics, :signals, :raw
                )
            """),
            params,
        )

    def delete_health_range(self, device_id: str, start: float, end: float) -> int:
        result = self._conn.execute(
            text("""
                DELETE FROM health_data
                WHERE device_id = :device_id AND ts >= :start AND ts <= :end
            """),
            {"device_id": device_id, "start": start, "end": end},
        )
        return result.rowcount

    def insert_sleep(self, device_id: str, ts: float, sleep_quality: str, duration: float) -> None:
        self._conn.execute(
            text("""
                INSERT INTO sleep_data (device_id, ts, sleep_quality, duration)
                VALUES (:device_id, :ts, :sleep_quality, :duration)
            """),
            {
                "device_id": device_id,
                "ts": ts,
                "sleep_quality": sleep_quality,
                "duration": duration,
            },
        )

    def count_health(self, device_id: str, start: Optional[float] = None, end: Optional[float] = None) -> int:
        clauses, params = self._range_clause(device_id, start, end)
        row = self._conn.execute(
            text(f"SELECT COUNT(*) AS cnt FROM health_data WHERE {clauses}"),
            params,
        ).fetchone()
        return int(row.cnt) if row else 0

    def count_sleep(self, device_id: str) -> int:
        row = self._conn.execute(
            text("SELECT COUNT(*) AS cnt FROM sleep_data WHERE device_id = :device_id"),
            {"device_id": device_id},
        ).fetchone()
        return int(row.cnt) if row else 0

    def health_history(
        self,
        device_id: str,
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Registros más recientes primero."""
        clauses, params = self._range_clause(device_id, start, end)
        params["limit"] = int(limit)
        rows = self._conn.execute(
            text(f"""
                SELECT * FROM health_data WHERE {clauses}
                ORDER BY ts DESC
                LIMIT :limit
            """),
            params,
        ).fetchall()
        return [self._health_from_row(r) for r in rows]

    def heart_rate_summary(
        self,
        device_id: str,
        start: Optional[float] = None,
        end: Optional[float] = None,
    ) -> Dict[str, Any]:
        """min/avg/max de heartRate con presencia y valor > 0."""
        clauses, params = self._range_clause(device_id, start, end)
        row = self._conn.execute(
            text(f"""
                SELECT MIN(heart_rate) AS min_hr, AVG(heart_rate) AS avg_hr,
                       MAX(heart_rate) AS max_hr, COUNT(*) AS cnt
                FROM health_data
                WHERE {clauses} AND heart_rate > 0 AND presence = 1
            """),
            params,
        ).fetchone()
        return {
            "minHR": row.min_hr if row else None,
            "avgHR": float(row.avg_hr) if row and row.avg_hr is not None else None,
            "maxHR": row.max_hr if row else None,
            "count": int(row.cnt) if row else 0,
        }

    @staticmethod
    def _range_clause(device_id: str, start: Optional[float], end: Optional[float]):
        clauses = ["device_id = :device_id"]
        params: Dict[str, Any] = {"device_id": device_id}
        if start is not None:
            clauses.append("ts >= :start")
            params["start"] = start
        if end is not None:
            clauses.append("ts <= :end")
            params["end"] = end
        return " AND ".join(clauses), params

    @staticmethod
    def _health_from_row(row) -> Dict[str, Any]:
        data = dict(row._mapping)
        record: Dict[str, Any] = {"deviceId": data["device_id"], "ts": data["ts"]}
        for name, column in HEALTH_FLAT_COLUMNS.items():
            record[name] = data.get(column)
        record["presence"] = data.get("presence")
        record["metrics"] = loads_json(data.get("metrics")) or {}
        record["signals"] = loads_json(data.get("signals")) or {}
        record["raw"] = data.get("raw")
        return record

