"""Database connection manager for SQLite."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from family_access.config import DB_PATH

from .schema import SCHEMA


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Get a database connection with row factory enabled."""
    conn = sqlite3.connect(db_path or DB_PATH, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_database(db_path: str | Path | None = None) -> None:
    """Initialize the database with schema."""
    path = Path(db_path or DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


@contextmanager
def immediate_transaction(conn: sqlite3.Connection):
    """Run a block under the database write lock, rolling back on error.

    BEGIN IMMEDIATE takes the write lock before the first read, so two
    writers racing on the same rows serialize instead of both reading stale
    state.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def utc_timestamp(moment: datetime | None = None) -> str:
    """Fixed-width UTC ISO-8601 timestamp, sortable as text."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")
