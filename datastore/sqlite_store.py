from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Iterator, Optional, Sequence

from exceptions import StoreError
from settings import get_settings

logger = logging.getLogger(__name__)

Params = Sequence[Any]

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS temperature_readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    temperature REAL NOT NULL,
    humidity REAL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS temperature_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    temperature REAL NOT NULL,
    duration INTEGER,
    max_temperature REAL,
    resolved INTEGER NOT NULL DEFAULT 0,
    resolved_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS cooling_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    activated_at TEXT NOT NULL,
    deactivated_at TEXT,
    duration INTEGER,
    trigger_type TEXT NOT NULL CHECK(trigger_type IN ('auto', 'manual')),
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS hourly_temperature_agg (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    hour INTEGER NOT NULL,
    avg_temperature REAL NOT NULL,
    min_temperature REAL NOT NULL,
    max_temperature REAL NOT NULL,
    avg_humidity REAL,
    min_humidity REAL,
    max_humidity REAL,
    readings_count INTEGER NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(date, hour)
);
CREATE TABLE IF NOT EXISTS daily_temperature_agg (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    avg_temperature REAL NOT NULL,
    min_temperature REAL NOT NULL,
    max_temperature REAL NOT NULL,
    avg_humidity REAL,
    min_humidity REAL,
    max_humidity REAL,
    readings_count INTEGER NOT NULL,
    alerts_count INTEGER NOT NULL DEFAULT 0,
    cooling_events_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(date)
);
CREATE INDEX IF NOT EXISTS idx_temp_readings_timestamp ON temperature_readings(timestamp);
CREATE INDEX IF NOT EXISTS idx_temp_alerts_timestamp ON temperature_alerts(timestamp);
CREATE INDEX IF NOT EXISTS idx_cooling_events_activated ON cooling_events(activated_at);
CREATE INDEX IF NOT EXISTS idx_hourly_agg_date ON hourly_temperature_agg(date);
CREATE INDEX IF NOT EXISTS idx_daily_agg_date ON daily_temperature_agg(date);
"""


@dataclass(frozen=True)
class WriteResult:
    rowcount: int
    lastrowid: Optional[int]


class SQLiteStore:
    """Thread-safe SQLite access with explicit transaction units.

    The connection runs in autocommit mode; ``transaction()`` opens an
    explicit ``BEGIN IMMEDIATE`` and holds the store lock until it commits
    or rolls back, so statements from other threads never interleave.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._lock = RLock()
        self._in_transaction = False
        with self._lock:
            if path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL;")
                self._conn.execute("PRAGMA synchronous = NORMAL;")
            self._conn.executescript(_SCHEMA)
        logger.info("Connected to SQLite database at %s", path)

    def execute(self, sql: str, params: Params = ()) -> WriteResult:
        """Run a parameterized write and report the affected rows."""
        with self._lock:
            try:
                cursor = self._conn.execute(sql, tuple(params))
            except sqlite3.Error as exc:
                raise StoreError(f"Write failed: {exc}") from exc
            return WriteResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid)

    def fetch_one(self, sql: str, params: Params = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            try:
                row = self._conn.execute(sql, tuple(params)).fetchone()
            except sqlite3.Error as exc:
                raise StoreError(f"Read failed: {exc}") from exc
        return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: Params = ()) -> list[Dict[str, Any]]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"Read failed: {exc}") from exc
        return [dict(row) for row in rows]

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStore"]:
        """Commit every write in the block, or none of them."""
        with self._lock:
            if self._in_transaction:
                raise StoreError("Nested transactions are not supported.")
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreError(f"Could not begin transaction: {exc}") from exc
            self._in_transaction = True
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as exc:
                    self._conn.execute("ROLLBACK")
                    raise StoreError(f"Commit failed: {exc}") from exc
            finally:
                self._in_transaction = False

    def close(self) -> None:
        with self._lock:
            self._conn.close()


@lru_cache
def build_default_store(path: Optional[str] = None) -> SQLiteStore:
    settings = get_settings()
    database_path = settings.database_path if path is None else path
    return SQLiteStore(path=database_path)
