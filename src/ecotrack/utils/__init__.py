"""Utility helpers."""

from ecotrack.utils.logging import configure_logging, get_logger
from ecotrack.utils.text import normalize_phone_number
from ecotrack.utils.time import new_id, utc_now

__all__ = [
    "configure_logging",
    "get_logger",
    "new_id",
    "normalize_phone_number",
    "utc_now",
]
