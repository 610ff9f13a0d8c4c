"""Request schemas for the market cache API."""

from typing import List

from pydantic import BaseModel, Field, field_validator


class PricePoint(BaseModel):
    """One OHLCV bar; ``timestamp`` in epoch milliseconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = Field(default=0.0, ge=0)


class IndicatorRequest(BaseModel):
    """Price series to run the indicator engine over."""

    prices: List[PricePoint] = Field(..., min_length=1)

    @field_validator("prices")
    @classmethod
    def ensure_ascending(cls, value: List[PricePoint]) -> List[PricePoint]:
        timestamps = [point.timestamp for point in value]
        if any(later < earlier for earlier, later in zip(timestamps, timestamps[1:])):
            raise ValueError("prices must be in ascending timestamp order")
        return value


class InvalidateRequest(BaseModel):
    key: str = Field(..., min_length=1, description="Cache key, e.g. nse:stock:SBIN:quote")
