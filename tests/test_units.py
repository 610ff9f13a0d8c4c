"""Additional unit coverage for core modules."""

from __future__ import annotations

import logging

from config.settings import Settings
from market_cache.market_hours import MarketCalendar
from tools.error_handler import (
    DataError,
    MarketCacheError,
    NetworkError,
    format_error_response,
    sanitize_error_message,
)


def test_sanitize_strips_paths_and_tracebacks() -> None:
    raw = "failed reading /srv/app/market_data.db\nTraceback (most recent call last):\n  File x"
    cleaned = sanitize_error_message(raw)
    assert "/srv/app" not in cleaned
    assert "Traceback" not in cleaned
    assert sanitize_error_message("") == "An internal error occurred."


def test_domain_error_response_keeps_category(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        payload = format_error_response(NetworkError("NSE fetch failed 503", failed_step="NSE_FETCH"))
    assert payload.error_category == "NETWORK_ERROR"
    assert payload.failed_step == "NSE_FETCH"
    assert payload.error_message == "NSE fetch failed 503"
    assert "category=NETWORK_ERROR" in caplog.text


def test_unexpected_error_is_unknown() -> None:
    payload = format_error_response(RuntimeError("boom"), failed_step="REQUEST")
    assert payload.error_category == "UNKNOWN_ERROR"
    assert payload.failed_step == "REQUEST"


def test_error_hierarchy() -> None:
    error = DataError("bad payload")
    assert isinstance(error, MarketCacheError)
    assert str(error) == "bad payload"
    assert NetworkError("x", status_code=502).status_code == 502


def test_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("HOT_CACHE_TTL", "30")
    monkeypatch.setenv("NSE_OPEN", "10:00")
    configured = Settings()
    assert configured.hot_cache_ttl == 30
    assert MarketCalendar(configured.nse_open, configured.nse_close, configured.nse_timezone).open_time.hour == 10


def test_settings_defaults() -> None:
    defaults = Settings()
    assert (defaults.hot_cache_ttl, defaults.main_cache_ttl, defaults.static_cache_ttl) == (60, 300, 3600)
    assert defaults.retry_initial_delay_ms == 1000
    assert defaults.client_cache_large_threshold == 50_000
