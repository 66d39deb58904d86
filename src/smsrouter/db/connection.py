"""DuckDB connection management for the SMS router."""

import os
from pathlib import Path

import duckdb


def get_db_path() -> str:
    """Get the database file path from environment or default."""
    return os.getenv("SMSROUTER_DB_PATH", "data/smsrouter.duckdb")


def get_connection(db_path: str | None = None) -> duckdb.DuckDBPyConnection:
    """Get a DuckDB connection.

    Args:
        db_path: Path to the database file. If None, uses get_db_path().
                 ":memory:" opens an in-memory database (used by tests).
    """
    if db_path is None:
        db_path = get_db_path()

    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    return duckdb.connect(db_path)


def init_db(db_path: str | None = None) -> duckdb.DuckDBPyConnection:
    """Open a connection and apply pending migrations."""
    conn = get_connection(db_path=db_path)

    from smsrouter.db.migrations import run_migrations

    run_migrations(conn)
    return conn
