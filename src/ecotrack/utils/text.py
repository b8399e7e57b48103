"""Text helpers."""

from __future__ import annotations

import re
from typing import Optional


PHONE_PATTERN = re.compile(r"^\+?[0-9]{10,15}$")


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace and trim."""
    return re.sub(r"\s+", " ", text).strip()


def normalize_phone_number(value: Optional[str]) -> Optional[str]:
    """Strip whitespace from a phone number; None if it is not 10-15 digits."""
    if not value:
        return None
    compact = re.sub(r"\s+", "", value)
    return compact if PHONE_PATTERN.match(compact) else None


def clean_note(note: Optional[str], max_chars: int = 500) -> Optional[str]:
    """Trim a free-text note for storage; empty notes become None."""
    if note is None:
        return None
    value = normalize_whitespace(note)[:max_chars]
    return value or None
