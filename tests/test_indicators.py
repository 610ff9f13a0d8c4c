"""Indicator engine outputs, insufficient-data contract and interpretations."""

from __future__ import annotations

import pytest

from tests.fixtures import create_synthetic_ohlcv, price_series
from tools.error_handler import DataError
from tools.indicators import (
    BollingerBandResult,
    MACDResult,
    calculate_average_true_range,
    calculate_bollinger_bands,
    calculate_ema,
    calculate_macd,
    calculate_obv,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    compute_indicator_summary,
    interpret_bollinger,
    interpret_macd,
    interpret_rsi,
    price_data_from_frame,
)


def test_sma_values_and_timestamps() -> None:
    data = price_series([1, 2, 3, 4, 5])
    result = calculate_sma(data, 3)
    assert [r.value for r in result] == [2, 3, 4]
    assert result[0].timestamp == data[2].timestamp


def test_short_series_returns_empty() -> None:
    data = price_series([1, 2, 3])
    assert calculate_sma(data, 5) == []
    assert calculate_ema(data, 5) == []
    assert calculate_rsi(data, 14) == []
    assert calculate_macd(data) == []
    assert calculate_bollinger_bands(data, 20) == []
    assert calculate_average_true_range(data, 14) == []
    assert calculate_stochastic(data, 14, 3).k == []
    assert calculate_obv([]) == []


def test_non_positive_period_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_sma(price_series([1, 2]), 0)


@pytest.mark.parametrize(
    "call",
    [
        lambda data: calculate_rsi(data, 0),
        lambda data: calculate_macd(data, 0, 26, 9),
        lambda data: calculate_bollinger_bands(data, 0),
        lambda data: calculate_stochastic(data, 0, 3),
        lambda data: calculate_stochastic(data, 14, 0),
        lambda data: calculate_average_true_range(data, 0),
    ],
)
def test_zero_period_is_not_replaced_by_default(call) -> None:
    with pytest.raises(ValueError):
        call(price_data_from_frame(create_synthetic_ohlcv(rows=60)))


def test_ema_is_seeded_with_sma() -> None:
    data = price_series([2, 4, 6, 8])
    result = calculate_ema(data, 3)
    assert result[0].value == 4
    # multiplier 0.5: (8 - 4) * 0.5 + 4
    assert result[1].value == 6


def test_rsi_uptrend_and_downtrend() -> None:
    rising = price_series([100 + i for i in range(40)])
    falling = price_series([200 - i for i in range(40)])

    up = calculate_rsi(rising, 14)
    assert len(up) == 40 - 14
    assert up[-1].value > 50
    assert calculate_rsi(falling, 14)[-1].value < 50


def test_macd_aligns_fast_and_slow_lines() -> None:
    data = create_synthetic_ohlcv(rows=60)
    result = calculate_macd(price_data_from_frame(data), 12, 26, 9)

    # slow EMA yields 35 points, signal EMA over those yields 27
    assert len(result) == 27
    for point in result:
        assert point.histogram == pytest.approx(point.macd - point.signal)


def test_bollinger_flat_series_collapses_bands() -> None:
    band = calculate_bollinger_bands(price_series([50.0] * 25), 20, 2)[-1]
    assert band.upper == band.middle == band.lower == 50.0


def test_stochastic_flat_range_is_neutral() -> None:
    data = [p._replace(high=10.0, low=10.0, close=10.0) for p in price_series([10.0] * 20)]
    result = calculate_stochastic(data, 14, 3)
    assert {r.value for r in result.k} == {50.0}
    assert {r.value for r in result.d} == {50.0}
    assert len(result.d) == len(result.k) - 2


def test_average_true_range_constant_bars() -> None:
    result = calculate_average_true_range(price_series([10.0] * 20), 14)
    assert len(result) == 6
    assert all(r.value == pytest.approx(2.0) for r in result)


def test_obv_accumulates_by_direction() -> None:
    data = price_series([10, 11, 10, 10], volumes=[100, 200, 300, 400])
    assert [r.value for r in calculate_obv(data)] == [100, 300, 0, 0]


@pytest.mark.parametrize("rsi, expected", [(75, "Overbought"), (70, "Overbought"), (25, "Oversold"), (50, "Neutral")])
def test_interpret_rsi(rsi: float, expected: str) -> None:
    assert interpret_rsi(rsi) == expected


def test_interpret_macd() -> None:
    assert interpret_macd(MACDResult(0, macd=5, signal=3, histogram=2)) == "Bullish"
    assert interpret_macd(MACDResult(0, macd=3, signal=5, histogram=-2)) == "Bearish"
    assert interpret_macd(MACDResult(0, macd=3, signal=3, histogram=0)) == "Neutral"


def test_interpret_bollinger() -> None:
    bands = BollingerBandResult(0, upper=110, middle=100, lower=90)
    assert interpret_bollinger(111, bands) == "Overbought - possible reversal"
    assert interpret_bollinger(90, bands) == "Oversold - possible bounce"
    assert interpret_bollinger(100, bands) == "Within bands"


def test_price_data_from_frame() -> None:
    frame = create_synthetic_ohlcv(rows=30)
    data = price_data_from_frame(frame)
    assert len(data) == 30
    assert data[0].timestamp == 1_704_067_200_000
    assert data[1].timestamp - data[0].timestamp == 86_400_000
    assert data[0].close == pytest.approx(frame["Close"].iloc[0])


def test_price_data_from_frame_requires_ohlcv() -> None:
    with pytest.raises(DataError):
        price_data_from_frame(create_synthetic_ohlcv(rows=5).drop(columns=["Volume"]))


def test_indicator_summary() -> None:
    summary = compute_indicator_summary(price_data_from_frame(create_synthetic_ohlcv(rows=120)))
    assert summary["points"] == 120
    assert all(value is not None for value in summary.values())
    assert summary["rsi_signal"] in {"Overbought", "Oversold", "Neutral"}

    short = compute_indicator_summary(price_series([1, 2, 3]))
    assert short["sma"] is None
    assert short["macd"] is None
    assert short["obv"] == 3000
