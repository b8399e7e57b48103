"""Locate and load the bundled SQL schema."""

from __future__ import annotations

from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[3]
SCHEMA_PATH = PROJECT_ROOT / "sql" / "001_core.sql"


def load_schema(path: Path = SCHEMA_PATH) -> str:
    """Read the DDL file as UTF-8 text."""
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    return path.read_text(encoding="utf-8")
