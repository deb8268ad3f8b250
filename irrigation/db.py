"""SQLite storage for device readings.

Every reading lands as one row of ``sensor_readings``; history is computed
from that table alone by bucketing ``created_at`` (the relay receipt time),
so the device clock never decides which window a reading falls in.  The
file is ``irrigation.db`` under ``IRRIGATION_DATA_DIR`` (default ``./data``).

Usage::

    from irrigation.db import get_db, init_db
    init_db()                  # idempotent
    conn = get_db()            # returns a per-thread connection
"""

from __future__ import annotations

import os
import sqlite3
import threading
from pathlib import Path

_DB_PATH: Path | None = None
_LOCAL = threading.local()


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        data_dir = Path(os.environ.get("IRRIGATION_DATA_DIR", "./data"))
        data_dir.mkdir(parents=True, exist_ok=True)
        _DB_PATH = data_dir / "irrigation.db"
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Point the module at another database file and drop cached connections."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def get_db() -> sqlite3.Connection:
    """Return this thread's connection.

    The store writes from a worker thread while ``/history`` reads on the
    event loop thread; WAL mode lets those proceed without blocking.
    """
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_db_path()), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create ``sensor_readings`` and its receipt-time index if missing."""
    if path:
        set_db_path(path)
    conn = get_db()
    _create_schema(conn)
    conn.commit()


_SCHEMA_SQL = """
-- ───────── Readings ─────────

CREATE TABLE IF NOT EXISTS sensor_readings (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    temperature   REAL NOT NULL,
    humidity      REAL NOT NULL,
    soil_moisture INTEGER NOT NULL,
    light_level   INTEGER NOT NULL,
    rain_drop     INTEGER NOT NULL CHECK (rain_drop IN (0, 1)),
    pump_status   BOOLEAN NOT NULL,
    auto_mode     BOOLEAN NOT NULL,
    timestamp     TIMESTAMP NOT NULL,                           -- as reported by the device
    created_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP  -- relay receipt time, UTC
);
CREATE INDEX IF NOT EXISTS idx_readings_created_at ON sensor_readings(created_at);
"""


def _create_schema(conn: sqlite3.Connection) -> None:
    """Execute all CREATE TABLE / INDEX statements in one transaction."""
    conn.executescript(_SCHEMA_SQL)
