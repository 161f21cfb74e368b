"""US equity trading calendar: trading days, session state, day stepping.

Non-trading days are Saturdays, Sundays and the dates in ``MARKET_HOLIDAYS``
(one table per year). Dates in years without a table still get weekend
exclusion, but their holidays are unknown; a warning is logged once per
uncovered year.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
MARKET_OPEN = time(9, 30)
MARKET_CLOSE = time(16, 0)

MARKET_HOLIDAYS: dict[int, frozenset[date]] = {
    2024: frozenset({
        date(2024, 1, 1),    # New Year's Day
        date(2024, 1, 15),   # Martin Luther King Jr. Day
        date(2024, 2, 19),   # Presidents' Day
        date(2024, 3, 29),   # Good Friday
        date(2024, 5, 27),   # Memorial Day
        date(2024, 6, 19),   # Juneteenth
        date(2024, 7, 4),    # Independence Day
        date(2024, 9, 2),    # Labor Day
        date(2024, 11, 28),  # Thanksgiving
        date(2024, 11, 29),  # Day after Thanksgiving
        date(2024, 12, 25),  # Christmas Day
    }),
    2025: frozenset({
        date(2025, 1, 1),
        date(2025, 1, 20),
        date(2025, 2, 17),
        date(2025, 4, 18),
        date(2025, 5, 26),
        date(2025, 6, 19),
        date(2025, 7, 4),
        date(2025, 9, 1),
        date(2025, 11, 27),
        date(2025, 11, 28),
        date(2025, 12, 25),
    }),
    2026: frozenset({
        date(2026, 1, 1),
        date(2026, 1, 19),
        date(2026, 2, 16),
        date(2026, 4, 3),
        date(2026, 5, 25),
        date(2026, 6, 19),
        date(2026, 7, 3),    # Independence Day (observed)
        date(2026, 9, 7),
        date(2026, 11, 26),
        date(2026, 11, 27),
        date(2026, 12, 25),
    }),
    2027: frozenset({
        date(2027, 1, 1),
        date(2027, 1, 18),
        date(2027, 2, 15),
        date(2027, 3, 26),
        date(2027, 5, 31),
        date(2027, 6, 18),   # Juneteenth (observed)
        date(2027, 7, 5),    # Independence Day (observed)
        date(2027, 9, 6),
        date(2027, 11, 25),
        date(2027, 11, 26),
        date(2027, 12, 24),  # Christmas Day (observed)
    }),
}


class SessionStatus(StrEnum):
    PRE_OPEN = "pre_open"
    OPEN = "open"
    POST_CLOSE = "post_close"
    WEEKEND = "weekend"
    HOLIDAY = "holiday"

    @property
    def is_open(self) -> bool:
        return self is SessionStatus.OPEN

    @property
    def is_trading_day(self) -> bool:
        return self in (
            SessionStatus.PRE_OPEN, SessionStatus.OPEN, SessionStatus.POST_CLOSE,
        )


@dataclass(frozen=True)
class MarketStatus:
    status: SessionStatus
    reason: str
    local_time: datetime
    next_trading_day: date | None = None

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    @property
    def is_trading_day(self) -> bool:
        return self.status.is_trading_day


class TradingCalendar:
    """Answers trading-day and session questions in exchange-local time."""

    def __init__(
        self,
        timezone: str = DEFAULT_TIMEZONE,
        holidays: dict[int, frozenset[date]] | None = None,
        market_open: time = MARKET_OPEN,
        market_close: time = MARKET_CLOSE,
    ) -> None:
        self._tz = ZoneInfo(timezone)
        self._holidays = MARKET_HOLIDAYS if holidays is None else holidays
        self._open = market_open
        self._close = market_close
        self._warned_years: set[int] = set()

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def covers(self, day: date) -> bool:
        """True if the holiday table has an entry for ``day``'s year."""
        return day.year in self._holidays

    def is_holiday(self, day: date) -> bool:
        table = self._holidays.get(day.year)
        if table is None:
            if day.year not in self._warned_years:
                self._warned_years.add(day.year)
                logger.warning(
                    "No holiday table for %d; only weekends are treated as closed",
                    day.year,
                )
            return False
        return day in table

    def is_trading_day(self, day: date) -> bool:
        if day.weekday() >= 5:
            return False
        return not self.is_holiday(day)

    def to_local(self, instant: datetime) -> datetime:
        """Convert an instant to exchange time. Naive datetimes are UTC."""
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        return instant.astimezone(self._tz)

    def session_status(self, instant: datetime) -> SessionStatus:
        local = self.to_local(instant)
        day = local.date()
        if day.weekday() >= 5:
            return SessionStatus.WEEKEND
        if self.is_holiday(day):
            return SessionStatus.HOLIDAY

        now = local.time()
        if now < self._open:
            return SessionStatus.PRE_OPEN
        if now < self._close:
            return SessionStatus.OPEN
        return SessionStatus.POST_CLOSE

    def market_status(self, instant: datetime) -> MarketStatus:
        """Session status with a display reason and, when closed, the next trading day."""
        local = self.to_local(instant)
        status = self.session_status(instant)

        if status is SessionStatus.WEEKEND:
            reason = "Saturday" if local.weekday() == 5 else "Sunday"
        elif status is SessionStatus.HOLIDAY:
            reason = "Market Holiday"
        elif status is SessionStatus.OPEN:
            reason = "Market Open"
        elif status is SessionStatus.PRE_OPEN:
            reason = "Before Market Open"
        else:
            reason = "After Market Close"

        next_day = None
        if not status.is_trading_day:
            next_day = self.next_trading_day(local.date())

        return MarketStatus(
            status=status, reason=reason, local_time=local, next_trading_day=next_day,
        )

    def next_trading_day(self, day: date) -> date:
        candidate = day + timedelta(days=1)
        while not self.is_trading_day(candidate):
            candidate += timedelta(days=1)
        return candidate

    def previous_trading_day(self, day: date) -> date:
        candidate = day - timedelta(days=1)
        while not self.is_trading_day(candidate):
            candidate -= timedelta(days=1)
        return candidate

    def last_trading_day(self, today: date) -> date:
        if self.is_trading_day(today):
            return today
        return self.previous_trading_day(today)

    def can_generate_predictions(self, day: date) -> bool:
        """Forecasts are only generated on trading days."""
        allowed = self.is_trading_day(day)
        if not allowed:
            logger.info("Cannot generate predictions on %s: market closed", day)
        return allowed
