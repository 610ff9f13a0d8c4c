"""Response schemas for the market cache API."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TierMetrics(BaseModel):
    """Per-tier cache counters."""

    keys: int
    hits: int
    misses: int
    hit_rate: float


class PollingStats(BaseModel):
    """Active polling jobs and their policies."""

    active_keys: List[str] = Field(default_factory=list)
    configs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    last_outcomes: Dict[str, str] = Field(default_factory=dict)


class CacheStatsResponse(BaseModel):
    """Read-only snapshot for operational dashboards."""

    tiers: Dict[str, TierMetrics]
    polling: PollingStats
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CacheSummaryResponse(BaseModel):
    """Default cache endpoint payload: key counts only."""

    status: str = "ok"
    caches: Dict[str, Dict[str, int]]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CleanupResponse(BaseModel):
    success: bool = True
    message: str = "Expired keys cleaned up"
    evicted: Dict[str, int] = Field(default_factory=dict)


class InvalidateResponse(BaseModel):
    success: bool = True
    key: str


class IndicatorSummaryResponse(BaseModel):
    """Latest indicator values and their interpretations."""

    points: int
    last_close: Optional[float] = None
    sma: Optional[float] = None
    ema: Optional[float] = None
    rsi: Optional[float] = None
    rsi_signal: Optional[str] = None
    macd: Optional[Dict[str, float]] = None
    macd_signal: Optional[str] = None
    bollinger: Optional[Dict[str, float]] = None
    bollinger_signal: Optional[str] = None
    stochastic_k: Optional[float] = None
    stochastic_d: Optional[float] = None
    atr: Optional[float] = None
    obv: Optional[float] = None


class ErrorResponse(BaseModel):
    """Structured error response."""

    error_category: str
    failed_step: Optional[str] = None
    error_message: str
