"""Input-side helpers for the upload endpoints."""

from services.csv_input import (
    decode_csv_bytes,
    is_csv_upload,
    parse_csv_text,
)

__all__ = [
    "decode_csv_bytes",
    "is_csv_upload",
    "parse_csv_text",
]
