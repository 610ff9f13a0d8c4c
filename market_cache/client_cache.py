"""
Client-side cache for UI processes.

Small payloads go to a synchronous file-backed key-value store, large payloads
to an asynchronous transactional sqlite store. Every entry carries its own
``{data, timestamp, ttl}`` envelope so expiry is checked on read regardless of
which store holds it. A store without a usable backing location degrades to
no-op reads and writes; storage problems are logged, never raised.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, Union

from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 300_000
PathLike = Union[str, Path]


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def _envelope(data: Any, ttl: int, clock: Callable[[], float]) -> Dict[str, Any]:
    return {"data": data, "timestamp": _now_ms(clock), "ttl": ttl}


def _is_live(entry: Dict[str, Any], clock: Callable[[], float]) -> bool:
    return _now_ms(clock) - entry["timestamp"] < entry["ttl"]


class LocalStorageCache:
    """Synchronous store: one JSON envelope file per key."""

    def __init__(
        self,
        directory: Optional[PathLike],
        prefix: str = "tradenext_cache_",
        clock: Callable[[], float] = time.time,
    ):
        self.prefix = prefix
        self._clock = clock
        self._dir: Optional[Path] = None
        if directory is not None:
            try:
                path = Path(directory)
                path.mkdir(parents=True, exist_ok=True)
                self._dir = path
            except OSError as exc:
                logger.warning("Local cache unavailable, running as no-op (%s)", exc)

    @property
    def available(self) -> bool:
        return self._dir is not None

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self._dir / f"{self.prefix}{digest}.json"

    def get(self, key: str) -> Optional[Any]:
        if not self.available:
            return None
        path = self._path(key)
        try:
            if not path.exists():
                return None
            entry = json.loads(path.read_text(encoding="utf-8"))
            if _is_live(entry, self._clock):
                return entry["data"]
        except (OSError, ValueError, KeyError, TypeError):
            return None
        # Clean up expired entry
        self.delete(key)
        return None

    def set(self, key: str, data: Any, ttl: int = DEFAULT_TTL_MS) -> None:
        if not self.available:
            return
        try:
            payload = json.dumps(_envelope(data, ttl, self._clock))
            self._path(key).write_text(payload, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Local cache set failed key=%s error=%s", key, exc)

    def delete(self, key: str) -> None:
        if not self.available:
            return
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Local cache delete failed key=%s error=%s", key, exc)

    def clear(self) -> None:
        if not self.available:
            return
        try:
            for path in self._dir.glob(f"{self.prefix}*.json"):
                path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Local cache clear failed: %s", exc)


class IndexedStoreCache:
    """Asynchronous transactional store backed by sqlite."""

    def __init__(self, db_path: Optional[PathLike], clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = Lock()
        self.db_path: Optional[str] = None
        if db_path is not None:
            try:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
                self.db_path = str(Path(db_path))
                self._init_db()
            except (OSError, sqlite3.Error) as exc:
                logger.warning("Bulk cache unavailable, running as no-op (%s)", exc)
                self.db_path = None

    @property
    def available(self) -> bool:
        return self.db_path is not None

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=5, check_same_thread=False)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._lock, self._transaction() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS cache (key TEXT PRIMARY KEY, entry TEXT NOT NULL)")

    def _get_sync(self, key: str) -> Optional[Any]:
        with self._lock, self._transaction() as conn:
            row = conn.execute("SELECT entry FROM cache WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        entry = json.loads(row[0])
        if _is_live(entry, self._clock):
            return entry["data"]
        return None

    def _put_sync(self, key: str, payload: str) -> None:
        with self._lock, self._transaction() as conn:
            conn.execute(
                "INSERT INTO cache (key, entry) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET entry = excluded.entry",
                (key, payload),
            )

    def _delete_sync(self, key: str) -> None:
        with self._lock, self._transaction() as conn:
            conn.execute("DELETE FROM cache WHERE key = ?", (key,))

    def _clear_sync(self) -> None:
        with self._lock, self._transaction() as conn:
            conn.execute("DELETE FROM cache")

    async def get(self, key: str) -> Optional[Any]:
        if not self.available:
            return None
        try:
            return await asyncio.to_thread(self._get_sync, key)
        except (sqlite3.Error, ValueError, KeyError, TypeError):
            return None

    async def set(self, key: str, data: Any, ttl: int = DEFAULT_TTL_MS) -> None:
        if not self.available:
            return
        try:
            payload = json.dumps(_envelope(data, ttl, self._clock))
            await asyncio.to_thread(self._put_sync, key, payload)
        except (sqlite3.Error, TypeError, ValueError) as exc:
            logger.warning("Bulk cache set failed key=%s error=%s", key, exc)

    async def delete(self, key: str) -> None:
        if not self.available:
            return
        try:
            await asyncio.to_thread(self._delete_sync, key)
        except sqlite3.Error as exc:
            logger.warning("Bulk cache delete failed key=%s error=%s", key, exc)

    async def clear(self) -> None:
        if not self.available:
            return
        try:
            await asyncio.to_thread(self._clear_sync)
        except sqlite3.Error as exc:
            logger.warning("Bulk cache clear failed: %s", exc)


class SmartCache:
    """Chooses the backing store by serialized payload size."""

    def __init__(
        self,
        local: LocalStorageCache,
        bulk: IndexedStoreCache,
        large_threshold: int = 50_000,
    ):
        self.local = local
        self.bulk = bulk
        self.large_threshold = large_threshold

    def is_large(self, data: Any) -> bool:
        try:
            return len(json.dumps(data)) > self.large_threshold
        except (TypeError, ValueError):
            return False

    async def get(self, key: str) -> Optional[Any]:
        # Try the local store first for fast access
        data = self.local.get(key)
        if data is not None:
            return data
        return await self.bulk.get(key)

    async def set(self, key: str, data: Any, ttl: int = DEFAULT_TTL_MS) -> None:
        # Drop any copy left in the other store by an earlier write.
        if self.is_large(data):
            self.local.delete(key)
            await self.bulk.set(key, data, ttl)
        else:
            await self.bulk.delete(key)
            self.local.set(key, data, ttl)

    async def delete(self, key: str) -> None:
        # A value may have changed size class across writes: always try both.
        self.local.delete(key)
        await self.bulk.delete(key)

    async def clear(self) -> None:
        self.local.clear()
        await self.bulk.clear()


class MarketDataCache:
    """Charts and quotes; routed by size."""

    def __init__(self, smart: SmartCache, ttl: int = 120_000):
        self._smart = smart
        self.ttl = ttl

    async def get(self, key: str) -> Optional[Any]:
        return await self._smart.get(f"market:{key}")

    async def set(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        await self._smart.set(f"market:{key}", data, ttl or self.ttl)


class PreferencesCache:
    """User preferences; always the synchronous store."""

    def __init__(self, local: LocalStorageCache, ttl: int = 86_400_000):
        self._local = local
        self.ttl = ttl

    def get(self, key: str) -> Optional[Any]:
        return self._local.get(f"prefs:{key}")

    def set(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        self._local.set(f"prefs:{key}", data, ttl or self.ttl)


class StaticDataCache:
    """Reference data; always the transactional store."""

    def __init__(self, bulk: IndexedStoreCache, ttl: int = 3_600_000):
        self._bulk = bulk
        self.ttl = ttl

    async def get(self, key: str) -> Optional[Any]:
        return await self._bulk.get(f"static:{key}")

    async def set(self, key: str, data: Any, ttl: Optional[int] = None) -> None:
        await self._bulk.set(f"static:{key}", data, ttl or self.ttl)


class ClientCache:
    """Entry point bundling the common client caching patterns."""

    def __init__(
        self,
        local: Optional[LocalStorageCache] = None,
        bulk: Optional[IndexedStoreCache] = None,
        large_threshold: Optional[int] = None,
    ):
        self.local = local or LocalStorageCache(None)
        self.bulk = bulk or IndexedStoreCache(None)
        self.smart = SmartCache(
            self.local,
            self.bulk,
            settings.client_cache_large_threshold if large_threshold is None else large_threshold,
        )
        self.market_data = MarketDataCache(self.smart)
        self.preferences = PreferencesCache(self.local)
        self.static_data = StaticDataCache(self.bulk)

    @classmethod
    def from_settings(cls) -> "ClientCache":
        return cls(
            local=LocalStorageCache(settings.client_cache_dir),
            bulk=IndexedStoreCache(settings.client_cache_db),
        )

    async def invalidate_all(self) -> None:
        await self.smart.clear()
