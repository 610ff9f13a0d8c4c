"""Market cache package exports."""

from .cache_configs import NSECacheCatalog, nse_cache
from .enhanced_cache import EnhancedCacheManager, MarketDataPoller, PollingRegistry
from .market_hours import MarketCalendar, MarketSession
from .tiered_cache import MISS, TieredCache, TTLStore

__all__ = [
    "EnhancedCacheManager",
    "MarketCalendar",
    "MarketDataPoller",
    "MarketSession",
    "MISS",
    "NSECacheCatalog",
    "PollingRegistry",
    "TieredCache",
    "TTLStore",
    "nse_cache",
]
