"""DuckDB persistence for the SMS router."""

from smsrouter.db.connection import get_connection, get_db_path, init_db

__all__ = ["get_connection", "get_db_path", "init_db"]
