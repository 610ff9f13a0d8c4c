"""Technical indicator calculation utilities.

Every function is a pure transform of an ascending-by-timestamp price series
and returns an empty list (never raises) when the series is shorter than the
window it needs. Series are not sorted here.
"""

from __future__ import annotations

from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from config.settings import settings
from tools.error_handler import DataError


class PriceData(NamedTuple):
    timestamp: int  # epoch millis
    open: float
    high: float
    low: float
    close: float
    volume: float


class IndicatorResult(NamedTuple):
    timestamp: int
    value: float


class MACDResult(NamedTuple):
    timestamp: int
    macd: float
    signal: float
    histogram: float


class BollingerBandResult(NamedTuple):
    timestamp: int
    upper: float
    middle: float
    lower: float


class StochasticResult(NamedTuple):
    k: List[IndicatorResult]
    d: List[IndicatorResult]


def _check_period(period: int, name: str = "period") -> None:
    if period < 1:
        raise ValueError(f"{name} must be >= 1, got {period}")


def _closes(data: Sequence[PriceData]) -> np.ndarray:
    return np.asarray([point.close for point in data], dtype=float)


def _as_price_series(points: Sequence[IndicatorResult]) -> List[PriceData]:
    """Lift an indicator line into a price series so it can be smoothed again."""
    return [PriceData(p.timestamp, p.value, p.value, p.value, p.value, 0.0) for p in points]


def calculate_sma(data: Sequence[PriceData], period: int) -> List[IndicatorResult]:
    _check_period(period)
    if len(data) < period:
        return []
    means = sliding_window_view(_closes(data), period).mean(axis=1)
    return [
        IndicatorResult(data[i + period - 1].timestamp, float(value))
        for i, value in enumerate(means)
    ]


def calculate_ema(data: Sequence[PriceData], period: int) -> List[IndicatorResult]:
    """EMA seeded with the SMA of the first ``period`` closes."""
    _check_period(period)
    if len(data) < period:
        return []

    multiplier = 2 / (period + 1)
    prev_ema = sum(point.close for point in data[:period]) / period
    results = [IndicatorResult(data[period - 1].timestamp, prev_ema)]

    for point in data[period:]:
        prev_ema = (point.close - prev_ema) * multiplier + prev_ema
        results.append(IndicatorResult(point.timestamp, prev_ema))
    return results


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def calculate_rsi(data: Sequence[PriceData], period: Optional[int] = None) -> List[IndicatorResult]:
    """Wilder's RSI; output length is ``len(data) - period``."""
    period = settings.rsi_period if period is None else period
    _check_period(period)
    if len(data) < period + 1:
        return []

    changes = np.diff(_closes(data))
    gains = np.clip(changes, 0, None)
    losses = np.clip(-changes, 0, None)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    results = [IndicatorResult(data[period].timestamp, _rsi_value(avg_gain, avg_loss))]

    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        results.append(IndicatorResult(data[i + 1].timestamp, _rsi_value(float(avg_gain), float(avg_loss))))
    return results


def calculate_macd(
    data: Sequence[PriceData],
    fast_period: Optional[int] = None,
    slow_period: Optional[int] = None,
    signal_period: Optional[int] = None,
) -> List[MACDResult]:
    fast_period = settings.macd_fast if fast_period is None else fast_period
    slow_period = settings.macd_slow if slow_period is None else slow_period
    signal_period = settings.macd_signal if signal_period is None else signal_period

    fast = calculate_ema(data, fast_period)
    slow = calculate_ema(data, slow_period)
    if not fast or not slow:
        return []

    # Align both EMAs on the shorter output (they share the trailing timestamps).
    length = min(len(fast), len(slow))
    fast, slow = fast[-length:], slow[-length:]
    macd_line = [
        IndicatorResult(f.timestamp, f.value - s.value)
        for f, s in zip(fast, slow)
    ]

    signal = calculate_ema(_as_price_series(macd_line), signal_period)
    offset = len(macd_line) - len(signal)
    results = []
    for i, sig in enumerate(signal):
        point = macd_line[i + offset]
        results.append(MACDResult(point.timestamp, point.value, sig.value, point.value - sig.value))
    return results


def calculate_bollinger_bands(
    data: Sequence[PriceData],
    period: Optional[int] = None,
    std_dev_multiplier: Optional[float] = None,
) -> List[BollingerBandResult]:
    period = settings.bb_period if period is None else period
    std_dev_multiplier = settings.bb_std if std_dev_multiplier is None else std_dev_multiplier
    _check_period(period)
    if len(data) < period:
        return []

    windows = sliding_window_view(_closes(data), period)
    middles = windows.mean(axis=1)
    # population standard deviation over the same window
    deviations = windows.std(axis=1, ddof=0)

    results = []
    for i, (middle, std_dev) in enumerate(zip(middles, deviations)):
        band = std_dev_multiplier * float(std_dev)
        results.append(
            BollingerBandResult(
                timestamp=data[i + period - 1].timestamp,
                upper=float(middle) + band,
                middle=float(middle),
                lower=float(middle) - band,
            )
        )
    return results


def calculate_stochastic(
    data: Sequence[PriceData],
    k_period: Optional[int] = None,
    d_period: Optional[int] = None,
) -> StochasticResult:
    k_period = settings.stochastic_k_period if k_period is None else k_period
    d_period = settings.stochastic_d_period if d_period is None else d_period
    _check_period(k_period, "k_period")
    _check_period(d_period, "d_period")
    if len(data) < k_period:
        return StochasticResult(k=[], d=[])

    highs = sliding_window_view(np.asarray([p.high for p in data], dtype=float), k_period).max(axis=1)
    lows = sliding_window_view(np.asarray([p.low for p in data], dtype=float), k_period).min(axis=1)

    k = []
    for i, (highest, lowest) in enumerate(zip(highs, lows)):
        point = data[i + k_period - 1]
        price_range = highest - lowest
        # Flat window: treat as neutral instead of dividing by zero
        stochastic = 50.0 if price_range == 0 else (point.close - lowest) / price_range * 100
        k.append(IndicatorResult(point.timestamp, float(min(100.0, max(0.0, stochastic)))))

    d = calculate_sma(_as_price_series(k), d_period)
    return StochasticResult(k=k, d=d)


def calculate_average_true_range(data: Sequence[PriceData], period: Optional[int] = None) -> List[IndicatorResult]:
    period = settings.atr_period if period is None else period
    _check_period(period)
    if len(data) < period + 1:
        return []

    true_ranges = [
        max(
            data[i].high - data[i].low,
            abs(data[i].high - data[i - 1].close),
            abs(data[i].low - data[i - 1].close),
        )
        for i in range(1, len(data))
    ]

    atr = sum(true_ranges[:period]) / period
    results = [IndicatorResult(data[period].timestamp, atr)]
    for i in range(period, len(true_ranges)):
        atr = (atr * (period - 1) + true_ranges[i]) / period
        results.append(IndicatorResult(data[i + 1].timestamp, atr))
    return results


def calculate_obv(data: Sequence[PriceData]) -> List[IndicatorResult]:
    if not data:
        return []

    obv = float(data[0].volume)
    results = [IndicatorResult(data[0].timestamp, obv)]
    for prev, point in zip(data, data[1:]):
        if point.close > prev.close:
            obv += point.volume
        elif point.close < prev.close:
            obv -= point.volume
        results.append(IndicatorResult(point.timestamp, obv))
    return results


# ─── Interpreters ────────────────────────────────────────────────────────────

def interpret_rsi(rsi: float) -> str:
    if rsi >= 70:
        return "Overbought"
    if rsi <= 30:
        return "Oversold"
    return "Neutral"


def interpret_macd(macd: MACDResult) -> str:
    if macd.histogram > 0 and macd.macd > macd.signal:
        return "Bullish"
    if macd.histogram < 0 and macd.macd < macd.signal:
        return "Bearish"
    return "Neutral"


def interpret_bollinger(price: float, bands: BollingerBandResult) -> str:
    if price >= bands.upper:
        return "Overbought - possible reversal"
    if price <= bands.lower:
        return "Oversold - possible bounce"
    return "Within bands"


# ─── Frame conversion & summary ──────────────────────────────────────────────

def price_data_from_frame(df: pd.DataFrame) -> List[PriceData]:
    """Convert a ``Date|Open|High|Low|Close|Volume`` frame into a price series."""
    required = {"Date", "Open", "High", "Low", "Close", "Volume"}
    missing = required.difference(df.columns)
    if missing:
        raise DataError(
            f"Indicator input missing required OHLCV columns: {', '.join(sorted(missing))}",
            failed_step="COMPUTE_INDICATORS",
        )

    clean = df.dropna(subset=sorted(required))
    dates = pd.to_datetime(clean["Date"])
    millis = (dates - pd.Timestamp("1970-01-01")) // pd.Timedelta(milliseconds=1)

    return [
        PriceData(int(ts), float(o), float(h), float(low), float(c), float(v))
        for ts, o, h, low, c, v in zip(
            millis, clean["Open"], clean["High"], clean["Low"], clean["Close"], clean["Volume"]
        )
    ]


def compute_indicator_summary(data: Sequence[PriceData]) -> Dict[str, Any]:
    """Latest value of every indicator plus its interpretation, ``None`` where undefined."""
    sma = calculate_sma(data, settings.sma_period)
    ema = calculate_ema(data, settings.ema_period)
    rsi = calculate_rsi(data)
    macd = calculate_macd(data)
    bands = calculate_bollinger_bands(data)
    stochastic = calculate_stochastic(data)
    atr = calculate_average_true_range(data)
    obv = calculate_obv(data)
    last_close = data[-1].close if data else None

    return {
        "points": len(data),
        "last_close": last_close,
        "sma": sma[-1].value if sma else None,
        "ema": ema[-1].value if ema else None,
        "rsi": rsi[-1].value if rsi else None,
        "rsi_signal": interpret_rsi(rsi[-1].value) if rsi else None,
        "macd": macd[-1]._asdict() if macd else None,
        "macd_signal": interpret_macd(macd[-1]) if macd else None,
        "bollinger": bands[-1]._asdict() if bands else None,
        "bollinger_signal": interpret_bollinger(last_close, bands[-1]) if bands else None,
        "stochastic_k": stochastic.k[-1].value if stochastic.k else None,
        "stochastic_d": stochastic.d[-1].value if stochastic.d else None,
        "atr": atr[-1].value if atr else None,
        "obv": obv[-1].value if obv else None,
    }
