from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from tools.error_handler import DataError


class SqliteDurableStore:
    """Last known good upstream payload per cache key, kept across restarts."""

    def __init__(self, db_path: str = "market_data.db"):
        self.db_path = str(Path(db_path))
        self._lock = Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS market_data (
                            key TEXT PRIMARY KEY,
                            payload TEXT NOT NULL,
                            updated_at REAL NOT NULL
                        )
                        """
                    )
            finally:
                conn.close()

    def write(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, separators=(",", ":"), default=str)
        except (TypeError, ValueError) as exc:
            raise DataError(f"Cannot persist value for {key}: {exc}", failed_step="DURABLE_WRITE") from exc
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO market_data (key, payload, updated_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            payload = excluded.payload,
                            updated_at = excluded.updated_at
                        """,
                        (key, payload, time.time()),
                    )
            finally:
                conn.close()

    def read(self, key: str) -> Optional[Any]:
        """Stored payload for ``key``, or ``None`` when nothing was written."""
        conn = self._connect()
        try:
            row = conn.execute("SELECT payload FROM market_data WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        try:
            return json.loads(row["payload"])
        except json.JSONDecodeError:
            return None

    def delete(self, key: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM market_data WHERE key = ?", (key,))
                return cursor.rowcount > 0
            finally:
                conn.close()
