"""Shared synthetic data fixtures for deterministic tests."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from market_cache.market_hours import MarketCalendar
from tools.indicators import PriceData

IST = ZoneInfo("Asia/Kolkata")

# Wednesday 10:00 IST, a regular trading day
SESSION_OPEN_AT = datetime(2025, 1, 22, 10, 0, tzinfo=IST)
# Saturday
WEEKEND_AT = datetime(2025, 1, 25, 11, 0, tzinfo=IST)

HOLIDAYS = ["2025-02-26", "2025-03-14"]


def create_synthetic_ohlcv(rows: int = 260, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    base = 100.0
    returns = rng.normal(0.0005, 0.01, size=rows)
    close = base * np.cumprod(1 + returns)
    open_ = close * (1 + rng.normal(0, 0.002, size=rows))
    high = np.maximum(open_, close) * (1 + rng.uniform(0.0, 0.01, size=rows))
    low = np.minimum(open_, close) * (1 - rng.uniform(0.0, 0.01, size=rows))
    volume = rng.integers(800_000, 2_000_000, size=rows)

    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=rows, freq="D"),
            "Open": open_,
            "High": high,
            "Low": low,
            "Close": close,
            "Volume": volume,
        }
    )


def price_series(closes: Sequence[float], volumes: Optional[Sequence[float]] = None) -> List[PriceData]:
    """One bar per close, a minute apart, with high/low one point either side."""
    volumes = volumes or [1000.0] * len(closes)
    start = 1_737_520_200_000
    return [
        PriceData(start + i * 60_000, close, close + 1, close - 1, close, float(volume))
        for i, (close, volume) in enumerate(zip(closes, volumes))
    ]


class FakeClock:
    """Manually advanced seconds clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def nse_calendar(at: datetime, holidays: Optional[Sequence[str]] = HOLIDAYS) -> MarketCalendar:
    """NSE calendar frozen at ``at``."""
    return MarketCalendar("09:15", "15:30", "Asia/Kolkata", holidays=holidays, clock=lambda: at)


class RecordingSleep:
    """Async sleep stand-in that returns immediately and records delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
