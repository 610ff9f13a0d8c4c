"""
Data-access functions for NSE resources.

Each call builds the catalog config for the resource and goes through the
cache manager. The fetch function handed to the manager calls NSE and
records the payload in the durable store; when NSE is unreachable it serves
the last persisted payload instead.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from market_cache.cache_configs import NSECacheCatalog, nse_cache
from market_cache.enhanced_cache import EnhancedCacheManager
from schemas.cache_schemas import CacheConfig
from tools.durable_store import SqliteDurableStore
from tools.error_handler import NetworkError
from tools.nse_client import NSEClient

logger = logging.getLogger(__name__)

Upstream = Callable[[], Awaitable[Any]]


class MarketDataService:
    def __init__(
        self,
        cache_manager: EnhancedCacheManager,
        client: NSEClient,
        store: Optional[SqliteDurableStore] = None,
        catalog: NSECacheCatalog = nse_cache,
    ):
        self.cache = cache_manager
        self.client = client
        self.store = store
        self.catalog = catalog

    def _fetcher(self, key: str, upstream: Upstream) -> Upstream:
        async def fetch() -> Any:
            try:
                data = await upstream()
            except NetworkError as exc:
                if self.store is None:
                    raise
                persisted = await asyncio.to_thread(self.store.read, key)
                if persisted is None:
                    raise
                logger.warning("Upstream unavailable, serving persisted data key=%s error=%s", key, exc)
                return persisted
            if self.store is not None:
                await asyncio.to_thread(self.store.write, key, data)
            return data

        return fetch

    async def _get(self, config: CacheConfig, upstream: Upstream, force_refresh: bool = False) -> Any:
        if force_refresh:
            config = config.refreshed()
        return await self.cache.get_resource(config, self._fetcher(config.key, upstream))

    async def get_stock_quote(self, symbol: str, force_refresh: bool = False) -> Any:
        config = self.catalog.stock_quote(symbol)
        clean = config.key.split(":")[2]
        return await self._get(config, lambda: self.client.fetch_quote(clean), force_refresh)

    async def get_stock_chart(self, symbol: str, days: str = "1D", force_refresh: bool = False) -> Any:
        config = self.catalog.stock_chart(symbol, days)
        clean = config.key.split(":")[2]
        return await self._get(config, lambda: self.client.fetch_chart(clean, days.strip().upper()), force_refresh)

    async def get_stock_trends(self, symbol: str, force_refresh: bool = False) -> Any:
        config = self.catalog.stock_trends(symbol)
        clean = config.key.split(":")[2]
        return await self._get(config, lambda: self.client.fetch_trends(clean), force_refresh)

    async def get_index_quote(self, index_name: str, force_refresh: bool = False) -> Any:
        config = self.catalog.index_quote(index_name)
        clean = config.key.split(":")[2]
        return await self._get(config, lambda: self.client.fetch_index_quote(clean), force_refresh)

    async def get_corporate_data(self, symbol: str, kind: str, force_refresh: bool = False) -> Any:
        config = self.catalog.corporate(symbol, kind)
        clean = config.key.split(":")[2]
        kind = kind.strip().lower()
        return await self._get(config, lambda: self.client.fetch_corporate(clean, kind), force_refresh)

    async def get_static(self, name: str, fetch: Upstream, force_refresh: bool = False) -> Any:
        """Reference data from any async source, cached on the static tier."""
        return await self._get(self.catalog.static(name), fetch, force_refresh)

    def invalidate_stock(self, symbol: str) -> None:
        """Drop the quote, trends and default chart for ``symbol``."""
        for config in (
            self.catalog.stock_quote(symbol),
            self.catalog.stock_trends(symbol),
            self.catalog.stock_chart(symbol),
        ):
            self.cache.invalidate(config.key)
