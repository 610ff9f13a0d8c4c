"""
Market hours detection and market-aware TTL calculation.

The NSE trades 9:15 AM - 3:30 PM IST (Asia/Kolkata) on weekdays that are not
exchange holidays. Data cannot change while the market is closed, so a cache
entry written outside the session should live until the next session starts
regardless of its nominal TTL.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, NamedTuple, Optional, Union
from zoneinfo import ZoneInfo

from config.settings import settings

UTC = ZoneInfo("UTC")


class MarketSession(NamedTuple):
    """Derived session state; recomputed on every call, never stored."""
    is_open: bool
    next_open: datetime


def parse_session_time(value: Union[str, time]) -> time:
    """Parse an ``HH:MM`` setting into a ``datetime.time``."""
    if isinstance(value, time):
        return value
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def _parse_holiday(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


class MarketCalendar:
    """
    Fixed daily trading window in a fixed trading-location time zone.

    Args:
        open_time: Session start (inclusive)
        close_time: Session end (inclusive)
        timezone: IANA zone name or ZoneInfo of the exchange
        holidays: ISO dates or ``date`` objects; ``None``/empty means no holidays
        clock: Returns the current time; overridable for tests
    """

    def __init__(
        self,
        open_time: Union[str, time],
        close_time: Union[str, time],
        timezone: Union[str, ZoneInfo],
        holidays: Optional[Iterable[Union[str, date]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.open_time = parse_session_time(open_time)
        self.close_time = parse_session_time(close_time)
        if self.close_time <= self.open_time:
            raise ValueError("Market close time must be after open time")
        self.timezone = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self.holidays = frozenset(_parse_holiday(h) for h in (holidays or ()))
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_settings(cls, clock: Optional[Callable[[], datetime]] = None) -> "MarketCalendar":
        return cls(
            open_time=settings.nse_open,
            close_time=settings.nse_close,
            timezone=settings.nse_timezone,
            holidays=settings.nse_holidays,
            clock=clock,
        )

    def now(self) -> datetime:
        return self._clock()

    def _local(self, current_time: Optional[datetime]) -> datetime:
        if current_time is None:
            current_time = self.now()
        if current_time.tzinfo is None:
            # If naive datetime, assume it's in UTC
            current_time = current_time.replace(tzinfo=UTC)
        return current_time.astimezone(self.timezone)

    def is_trading_day(self, day: date) -> bool:
        # 5 = Saturday, 6 = Sunday
        return day.weekday() < 5 and day not in self.holidays

    def is_market_open(self, current_time: Optional[datetime] = None) -> bool:
        local_time = self._local(current_time)
        if not self.is_trading_day(local_time.date()):
            return False
        return self.open_time <= local_time.time() <= self.close_time

    def next_open(self, current_time: Optional[datetime] = None) -> datetime:
        """
        Start of the next session strictly after ``current_time``.

        Called mid-session this still returns tomorrow-or-later: it answers
        "when does the next session start", not "when did this one start".
        """
        local_time = self._local(current_time)
        target_day = local_time.date()
        if local_time >= self._session_start(target_day):
            target_day += timedelta(days=1)
        while not self.is_trading_day(target_day):
            target_day += timedelta(days=1)
        return self._session_start(target_day)

    def milliseconds_until_next_open(self, current_time: Optional[datetime] = None) -> int:
        local_time = self._local(current_time)
        delta = self.next_open(local_time).astimezone(UTC) - local_time.astimezone(UTC)
        return int(delta.total_seconds() * 1000)

    def get_recommended_ttl(self, default_ttl_ms: int, current_time: Optional[datetime] = None) -> int:
        """
        Return ``default_ttl_ms`` while the market is open, otherwise the time
        until the next session opens (milliseconds).
        """
        local_time = self._local(current_time)
        if self.is_market_open(local_time):
            return default_ttl_ms
        return self.milliseconds_until_next_open(local_time)

    def session_state(self, current_time: Optional[datetime] = None) -> MarketSession:
        local_time = self._local(current_time)
        return MarketSession(is_open=self.is_market_open(local_time), next_open=self.next_open(local_time))

    def _session_start(self, day: date) -> datetime:
        return datetime(day.year, day.month, day.day, self.open_time.hour, self.open_time.minute, tzinfo=self.timezone)


_default_calendar: Optional[MarketCalendar] = None


def default_calendar() -> MarketCalendar:
    """Process-wide NSE calendar built from settings."""
    global _default_calendar
    if _default_calendar is None:
        _default_calendar = MarketCalendar.from_settings()
    return _default_calendar


def is_market_open(current_time: Optional[datetime] = None) -> bool:
    return default_calendar().is_market_open(current_time)


def milliseconds_until_next_open(current_time: Optional[datetime] = None) -> int:
    return default_calendar().milliseconds_until_next_open(current_time)


def get_recommended_ttl(default_ttl_ms: int, current_time: Optional[datetime] = None) -> int:
    return default_calendar().get_recommended_ttl(default_ttl_ms, current_time)
