"""Stale-while-revalidate reads over the cache tiers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, NamedTuple

from market_cache.tiered_cache import MISS, TieredCache, TTLStore

logger = logging.getLogger(__name__)


class CachedResult(NamedTuple):
    data: Any
    stale: bool


class StaleWhileRevalidate:
    """
    Serve an entry for ``swr_ttl`` seconds past its expiry while a background
    task refreshes it. At most one revalidation runs per key.
    """

    def __init__(self, tiers: TieredCache):
        self.tiers = tiers
        self._pending: Dict[str, asyncio.Task] = {}

    async def get(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        tier: str = "main",
        ttl: float = 30,
        swr_ttl: float = 30,
    ) -> CachedResult:
        store = self.tiers.tier(tier)

        cached = store.get(key) if self._is_live(store, key) else MISS
        if cached is not MISS:
            return CachedResult(data=cached, stale=False)

        # expired but still in SWR window?
        entry = store.peek(key)
        if entry is not None and store.seconds_since_expiry(entry) < swr_ttl:
            self._revalidate(key, fetcher, store, ttl)
            return CachedResult(data=entry.value, stale=True)

        # hard miss -> fetch synchronously
        fresh = await fetcher()
        store.set(key, fresh, ttl)
        return CachedResult(data=fresh, stale=False)

    @staticmethod
    def _is_live(store: TTLStore, key: str) -> bool:
        entry = store.peek(key)
        return entry is None or not store.is_expired(entry)

    def _revalidate(self, key: str, fetcher: Callable[[], Awaitable[Any]], store: TTLStore, ttl: float) -> None:
        running = self._pending.get(key)
        if running is not None and not running.done():
            return
        task = asyncio.create_task(self._refresh(key, fetcher, store, ttl), name=f"swr:{key}")
        self._pending[key] = task
        task.add_done_callback(lambda done: self._release(key, done))

    def _release(self, key: str, done: asyncio.Task) -> None:
        # A newer revalidation may already own the slot.
        if self._pending.get(key) is done:
            del self._pending[key]

    async def _refresh(self, key: str, fetcher: Callable[[], Awaitable[Any]], store: TTLStore, ttl: float) -> None:
        try:
            fresh = await fetcher()
        except Exception as exc:
            logger.warning("Background revalidation failed event=swr_failed key=%s error=%s", key, exc)
            return
        store.set(key, fresh, ttl)
        logger.debug("Background revalidation complete event=swr_refreshed key=%s", key)

    async def wait_pending(self) -> None:
        """Wait for in-flight revalidations (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending.values()), return_exceptions=True)
