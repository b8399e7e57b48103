"""Postgres connection helpers for the ledger store."""

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg
from psycopg.rows import RowFactory, tuple_row

from ecotrack.config import Settings


APPLICATION_NAME = "ecotrack-core"
CONNECT_TIMEOUT_SECONDS = 10


def get_connection(settings: Optional[Settings] = None) -> psycopg.Connection:
    """Open a new connection tagged with the application name."""
    settings = settings or Settings()
    return psycopg.connect(
        settings.get_database_url(),
        application_name=APPLICATION_NAME,
        connect_timeout=CONNECT_TIMEOUT_SECONDS,
    )


@contextmanager
def db_cursor(
    settings: Optional[Settings] = None,
    row_factory: RowFactory[Any] = tuple_row,
) -> Iterator[psycopg.Cursor]:
    """Yield a cursor inside one transaction; commit on exit, roll back on error."""
    conn = get_connection(settings)
    try:
        with conn.cursor(row_factory=row_factory) as cursor:
            yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def ping(settings: Optional[Settings] = None) -> bool:
    """Round-trip a trivial query; errors propagate to the caller."""
    with db_cursor(settings) as cursor:
        cursor.execute("select 1")
        row = cursor.fetchone()
    return row is not None and row[0] == 1
