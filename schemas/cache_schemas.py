"""Cache resource descriptors shared by the cache manager and the catalog."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CacheTierName = Literal["hot", "main", "static"]


class PollingConfig(BaseModel):
    """Proactive refresh policy for one polled cache key."""

    model_config = ConfigDict(frozen=True)

    interval_ms: int = Field(..., gt=0)
    max_age_ms: int = Field(..., ge=0)
    retry_attempts: int = Field(3, ge=1)
    backoff_multiplier: float = Field(2.0, gt=1.0)


class CacheConfig(BaseModel):
    """One logical cached resource.

    ``key`` must be a deterministic function of the resource identity so that
    repeated requests for the same resource collide on the same entry.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    ttl_ms: int = Field(..., gt=0)
    tier: CacheTierName = "main"
    force_refresh: bool = False

    def refreshed(self) -> "CacheConfig":
        """Copy of this config that bypasses the cache read."""
        return self.model_copy(update={"force_refresh": True})


class PolledCacheConfig(CacheConfig):
    """Cache config that always carries a polling policy."""

    polling: PollingConfig


class RefreshOutcome(str, Enum):
    """Result of one background polling cycle."""

    REFRESHED = "refreshed"
    SKIPPED_MARKET_CLOSED = "skipped_market_closed"
    SKIPPED_FRESH = "skipped_fresh"
    FAILED_KEPT_STALE = "failed_kept_stale"
    NOT_POLLED = "not_polled"
