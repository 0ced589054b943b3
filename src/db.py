"""Shared SQLite helpers — WAL mode, JSON payload tables."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def wal_connect(db_path: str | Path) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode."""
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


@contextmanager
def wal_session(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Connection that commits on success, rolls back on error, and always closes."""
    conn = wal_connect(db_path)
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def ensure_payload_table(conn: sqlite3.Connection, table: str, time_column: str) -> None:
    """Create an id + JSON payload table with an indexed timestamp column."""
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id TEXT PRIMARY KEY,
            {time_column} TIMESTAMP,
            payload TEXT NOT NULL
        )
    """)
    conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_{time_column} ON {table}({time_column})")
