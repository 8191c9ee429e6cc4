"""Identidad del usuario que hace la petición.

La validación de credenciales/sesión la hace el gateway; aquí solo se lee el
id de usuario que deja en ``X-User-Id``.
"""

from __future__ import annotations

from fastapi import Header, HTTPException


def require_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id")
) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="User identity required")
    return x_user_id.strip()
