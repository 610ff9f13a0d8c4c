"""
Domain cache config catalog for NSE data.

Quotes and index levels move intraday and get a short TTL plus active
polling; charts, corporate data and reference data change at most once per
trading day and rely on a long passive TTL (stretched further while the
market is closed).
"""

from __future__ import annotations

from config.settings import settings
from schemas.cache_schemas import CacheConfig, PolledCacheConfig, PollingConfig


def _symbol(value: str) -> str:
    cleaned = value.strip().upper()
    if not cleaned:
        raise ValueError("symbol cannot be empty")
    return cleaned


def _quote_polling(interval_ms: int, max_age_ms: int) -> PollingConfig:
    return PollingConfig(
        interval_ms=interval_ms,
        max_age_ms=max_age_ms,
        retry_attempts=settings.poll_retry_attempts,
        backoff_multiplier=settings.poll_backoff_multiplier,
    )


class NSECacheCatalog:
    """Maps a resource kind + identifier to a fully formed cache config."""

    def stock_quote(self, symbol: str) -> PolledCacheConfig:
        return PolledCacheConfig(
            key=f"nse:stock:{_symbol(symbol)}:quote",
            ttl_ms=settings.stock_quote_ttl_ms,
            tier="hot",
            polling=_quote_polling(settings.stock_quote_poll_interval_ms, settings.stock_quote_poll_max_age_ms),
        )

    def stock_chart(self, symbol: str, days: str = "1D") -> CacheConfig:
        return CacheConfig(
            key=f"nse:stock:{_symbol(symbol)}:chart:{days.strip().upper()}",
            ttl_ms=settings.stock_chart_ttl_ms,
            tier="main",
        )

    def stock_trends(self, symbol: str) -> CacheConfig:
        return CacheConfig(
            key=f"nse:stock:{_symbol(symbol)}:trends",
            ttl_ms=settings.corporate_data_ttl_ms,
            tier="main",
        )

    def index_quote(self, index_name: str) -> PolledCacheConfig:
        return PolledCacheConfig(
            key=f"nse:index:{_symbol(index_name)}:quote",
            ttl_ms=settings.index_quote_ttl_ms,
            tier="hot",
            polling=_quote_polling(settings.index_quote_poll_interval_ms, settings.index_quote_poll_max_age_ms),
        )

    def static(self, name: str) -> CacheConfig:
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("static resource name cannot be empty")
        return CacheConfig(key=f"nse:static:{cleaned}", ttl_ms=settings.static_data_ttl_ms, tier="static")

    def corporate(self, symbol: str, kind: str) -> CacheConfig:
        return CacheConfig(
            key=f"nse:stock:{_symbol(symbol)}:corporate:{kind.strip().lower()}",
            ttl_ms=settings.corporate_data_ttl_ms,
            tier="main",
        )


nse_cache = NSECacheCatalog()
