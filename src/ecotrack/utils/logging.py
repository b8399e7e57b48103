"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO", run_env: Optional[str] = None) -> None:
    """Configure the root logger; lines carry the run environment when given."""
    fmt = LOG_FORMAT
    if run_env:
        fmt = LOG_FORMAT.replace("%(levelname)s", f"env={run_env} %(levelname)s")
    logging.basicConfig(level=level.upper(), format=fmt)
    # Webhook URLs can carry tokens in query params.
    for noisy in ("httpx", "httpcore", "psycopg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
