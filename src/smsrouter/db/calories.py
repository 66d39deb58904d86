"""Daily calorie counter persistence.

Totals are keyed by the civic day in SMSROUTER_TIMEZONE (default
America/New_York) so the counter rolls over at local midnight.
"""

import os
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import duckdb

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_CALORIE_TARGET = 1800
TARGET_KEY = "calorie_target"


def get_timezone() -> ZoneInfo:
    return ZoneInfo(os.getenv("SMSROUTER_TIMEZONE", DEFAULT_TIMEZONE))


def today(now: datetime | None = None) -> date:
    """Return the current civic day in the configured timezone."""
    now = now or datetime.now(UTC)
    return now.astimezone(get_timezone()).date()


def get_today_total(conn: duckdb.DuckDBPyConnection, day: date | None = None) -> int:
    """Get the running total for a day (0 when nothing is logged)."""
    row = conn.execute(
        "SELECT total FROM daily_calories WHERE day = ?", [day or today()]
    ).fetchone()
    return int(row[0]) if row else 0


def add_calories(conn: duckdb.DuckDBPyConnection, amount: float, day: date | None = None) -> int:
    """Add calories to a day's total.

    Returns:
        The new total.
    """
    day = day or today()
    conn.execute(
        "INSERT INTO daily_calories (day, total) VALUES (?, 0) ON CONFLICT DO NOTHING", [day]
    )
    row = conn.execute(
        """
        UPDATE daily_calories SET total = total + ?, updated_at = now()
        WHERE day = ?
        RETURNING total
        """,
        [round(amount), day],
    ).fetchone()
    return int(row[0])


def subtract_calories(
    conn: duckdb.DuckDBPyConnection, amount: float, day: date | None = None
) -> int:
    """Subtract calories from a day's total, flooring at zero.

    Returns:
        The new total.
    """
    day = day or today()
    conn.execute(
        "INSERT INTO daily_calories (day, total) VALUES (?, 0) ON CONFLICT DO NOTHING", [day]
    )
    row = conn.execute(
        """
        UPDATE daily_calories SET total = greatest(0, total - ?), updated_at = now()
        WHERE day = ?
        RETURNING total
        """,
        [round(amount), day],
    ).fetchone()
    return int(row[0])


def reset_today(conn: duckdb.DuckDBPyConnection, day: date | None = None) -> int:
    """Clear a day's total.

    Returns:
        The total before the reset.
    """
    day = day or today()
    previous = get_today_total(conn, day)
    conn.execute("DELETE FROM daily_calories WHERE day = ?", [day])
    return previous


def get_target(conn: duckdb.DuckDBPyConnection) -> int:
    """Get the daily calorie target."""
    row = conn.execute("SELECT value FROM settings WHERE key = ?", [TARGET_KEY]).fetchone()
    return int(row[0]) if row else DEFAULT_CALORIE_TARGET


def set_target(conn: duckdb.DuckDBPyConnection, target: int) -> int:
    """Set the daily calorie target.

    Raises:
        ValueError: If target is not positive
    """
    if target <= 0:
        raise ValueError(f"Calorie target must be positive, got {target}")
    conn.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", [TARGET_KEY, str(target)]
    )
    return target
