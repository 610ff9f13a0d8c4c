"""
In-memory TTL cache tiers.

Three independently configured stores back every cached resource:

- hot:    short-lived fast-moving data (live quotes, index levels)
- main:   default tier (charts, corporate data)
- static: long-lived reference data (symbol lists)

Each store is a plain key -> entry map with an absolute expiry. Expired
entries behave as misses, are removed lazily on read and proactively by a
periodic sweep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from config.settings import settings

logger = logging.getLogger(__name__)


class _Miss:
    """Sentinel type for cache misses (``None`` is a legal cached value)."""

    _instance: Optional["_Miss"] = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()

TIER_NAMES = ("hot", "main", "static")


class CacheEntry(NamedTuple):
    """Container for a cached value with its absolute expiry."""
    key: str
    value: Any
    expires_at: float


class TTLStore:
    """
    TTL-expiring key -> value map with hit/miss counters.

    All operations are single-step dict mutations, so the store needs no
    locking inside one event loop.
    """

    def __init__(
        self,
        name: str,
        default_ttl: float,
        check_period: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Tier name used in metrics and logs
            default_ttl: TTL in seconds applied when ``set`` gets none
            check_period: Seconds between proactive sweeps
            clock: Monotonic seconds source, overridable for tests
        """
        self.name = name
        self.default_ttl = default_ttl
        self.check_period = check_period
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(key, value, self._clock() + lifetime)

    def get(self, key: str) -> Any:
        """Return the cached value, or ``MISS`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return MISS
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return MISS
        self.hits += 1
        return entry.value

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Raw entry lookup, expired or not, without touching counters."""
        return self._entries.get(key)

    def is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    def seconds_since_expiry(self, entry: CacheEntry) -> float:
        return self._clock() - entry.expires_at

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def keys(self) -> List[str]:
        now = self._clock()
        return [key for key, entry in self._entries.items() if now < entry.expires_at]

    def cleanup_expired_keys(self) -> int:
        """Evict every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def flush_all(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "keys": len(self.keys()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }


class TieredCache:
    """Owns the hot, main and static stores and their background sweeper."""

    def __init__(
        self,
        hot: Optional[TTLStore] = None,
        main: Optional[TTLStore] = None,
        static: Optional[TTLStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._tiers: Dict[str, TTLStore] = {
            "hot": hot or TTLStore("hot", settings.hot_cache_ttl, settings.hot_cache_check_period, clock),
            "main": main or TTLStore("main", settings.main_cache_ttl, settings.main_cache_check_period, clock),
            "static": static or TTLStore("static", settings.static_cache_ttl, settings.static_cache_check_period, clock),
        }
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def hot(self) -> TTLStore:
        return self._tiers["hot"]

    @property
    def main(self) -> TTLStore:
        return self._tiers["main"]

    @property
    def static(self) -> TTLStore:
        return self._tiers["static"]

    def tier(self, name: str) -> TTLStore:
        try:
            return self._tiers[name]
        except KeyError:
            raise ValueError(f"Unknown cache tier: {name}. Must be one of: {', '.join(TIER_NAMES)}") from None

    def delete_everywhere(self, key: str) -> None:
        for store in self._tiers.values():
            store.delete(key)

    def clear_all(self) -> None:
        """Flush every tier (useful for development/testing)."""
        for store in self._tiers.values():
            store.flush_all()

    def cleanup_expired_keys(self) -> Dict[str, int]:
        return {name: store.cleanup_expired_keys() for name, store in self._tiers.items()}

    def metrics(self) -> Dict[str, Dict[str, Any]]:
        return {name: store.stats() for name, store in self._tiers.items()}

    # ── Background sweep ─────────────────────────────────────────

    def start_sweeper(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="cache-sweeper")

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        period = min(store.check_period for store in self._tiers.values())
        while True:
            await asyncio.sleep(period)
            evicted = self.cleanup_expired_keys()
            if any(evicted.values()):
                logger.debug("Cache sweep evicted=%s", evicted)
