"""Decodificación de líneas de telemetría."""

from .line_decoder import (
    HRV_FIELDS,
    DecodedBundle,
    DecodedLine,
    decode_line,
    decode_lines,
    extract_lines,
    to_flag,
    to_number,
)

__all__ = [
    "HRV_FIELDS",
    "DecodedBundle",
    "DecodedLine",
    "decode_line",
    "decode_lines",
    "extract_lines",
    "to_flag",
    "to_number",
]
