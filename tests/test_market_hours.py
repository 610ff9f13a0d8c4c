"""Market session window, holiday handling and market-aware TTL."""

from __future__ import annotations

from datetime import datetime, time

import pytest

from market_cache.market_hours import MarketCalendar, parse_session_time
from tests.fixtures import IST, SESSION_OPEN_AT, WEEKEND_AT, nse_calendar


def _ist(year: int, month: int, day: int, hour: int, minute: int, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=IST)


@pytest.mark.parametrize(
    "moment, expected",
    [
        (_ist(2025, 1, 22, 10, 0), True),
        (_ist(2025, 1, 22, 9, 15), True),
        (_ist(2025, 1, 22, 15, 30), True),
        (_ist(2025, 1, 22, 9, 14, 59), False),
        (_ist(2025, 1, 22, 15, 31), False),
        (_ist(2025, 1, 25, 11, 0), False),  # Saturday
        (_ist(2025, 1, 26, 11, 0), False),  # Sunday
        (_ist(2025, 2, 26, 11, 0), False),  # holiday
    ],
)
def test_is_market_open(moment: datetime, expected: bool) -> None:
    assert nse_calendar(moment).is_market_open(moment) is expected


def test_clock_is_used_when_no_time_given() -> None:
    assert nse_calendar(SESSION_OPEN_AT).is_market_open() is True
    assert nse_calendar(WEEKEND_AT).is_market_open() is False


def test_naive_datetime_is_treated_as_utc() -> None:
    calendar = nse_calendar(SESSION_OPEN_AT)
    # 04:30 UTC == 10:00 IST
    assert calendar.is_market_open(datetime(2025, 1, 22, 4, 30)) is True
    assert calendar.is_market_open(datetime(2025, 1, 22, 11, 0)) is False


def test_empty_holiday_set_opens_every_weekday() -> None:
    moment = _ist(2025, 2, 26, 11, 0)
    assert nse_calendar(moment, holidays=None).is_market_open(moment) is True
    assert nse_calendar(moment, holidays=[]).is_market_open(moment) is True


def test_weekend_rolls_to_monday() -> None:
    friday_evening = _ist(2025, 1, 24, 16, 0)
    calendar = nse_calendar(friday_evening)

    assert calendar.next_open(friday_evening) == _ist(2025, 1, 27, 9, 15)
    # Fri 16:00 -> Mon 09:15 is 65h15m
    assert calendar.milliseconds_until_next_open(friday_evening) == 234_900_000


def test_holiday_is_skipped() -> None:
    eve = _ist(2025, 2, 25, 16, 0)
    assert nse_calendar(eve).next_open(eve) == _ist(2025, 2, 27, 9, 15)


def test_pre_open_waits_for_same_day_session() -> None:
    early = _ist(2025, 1, 22, 8, 0)
    calendar = nse_calendar(early)
    assert calendar.next_open(early) == _ist(2025, 1, 22, 9, 15)
    assert calendar.milliseconds_until_next_open(early) == 75 * 60 * 1000


def test_mid_session_next_open_is_the_following_session() -> None:
    calendar = nse_calendar(SESSION_OPEN_AT)
    assert calendar.next_open() == _ist(2025, 1, 23, 9, 15)


def test_recommended_ttl_switches_on_session_state() -> None:
    assert nse_calendar(SESSION_OPEN_AT).get_recommended_ttl(120_000) == 120_000

    closed = nse_calendar(WEEKEND_AT)
    ttl = closed.get_recommended_ttl(120_000)
    assert ttl == closed.milliseconds_until_next_open()
    assert ttl > 0


def test_session_state() -> None:
    state = nse_calendar(WEEKEND_AT).session_state()
    assert state.is_open is False
    assert state.next_open == _ist(2025, 1, 27, 9, 15)


def test_invalid_window_rejected() -> None:
    with pytest.raises(ValueError):
        MarketCalendar("15:30", "09:15", "Asia/Kolkata")


def test_parse_session_time() -> None:
    assert parse_session_time(" 09:15 ") == time(9, 15)
    assert parse_session_time(time(15, 30)) == time(15, 30)
