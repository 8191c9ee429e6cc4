"""Autenticación de endpoints: API key compartida e identidad de usuario."""

from .api_key import require_api_key
from .user import require_user_id

__all__ = [
    "require_api_key",
    "require_user_id",
]
