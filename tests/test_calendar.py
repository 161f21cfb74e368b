from __future__ import annotations

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from stockcast.timing.calendar import SessionStatus, TradingCalendar

ET = ZoneInfo("America/New_York")


@pytest.fixture
def calendar() -> TradingCalendar:
    return TradingCalendar()


# ---------------------------------------------------------------------------
# Trading days
# ---------------------------------------------------------------------------


class TestIsTradingDay:
    def test_weekday_is_trading_day(self, calendar: TradingCalendar) -> None:
        assert calendar.is_trading_day(date(2025, 6, 2)) is True  # Monday

    def test_saturday_and_sunday_closed(self, calendar: TradingCalendar) -> None:
        assert calendar.is_trading_day(date(2025, 6, 7)) is False
        assert calendar.is_trading_day(date(2025, 6, 8)) is False

    def test_holidays_closed(self, calendar: TradingCalendar) -> None:
        assert calendar.is_trading_day(date(2025, 7, 4)) is False
        assert calendar.is_trading_day(date(2025, 11, 28)) is False
        assert calendar.is_trading_day(date(2026, 7, 3)) is False

    def test_custom_holiday_table(self) -> None:
        cal = TradingCalendar(holidays={2025: frozenset({date(2025, 6, 3)})})
        assert cal.is_trading_day(date(2025, 6, 3)) is False
        assert cal.is_trading_day(date(2025, 7, 4)) is True

    def test_uncovered_year_uses_weekends_only(
        self, calendar: TradingCalendar, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="stockcast.timing.calendar"):
            # 2030-01-01 is a Tuesday; the holiday is unknown without a table
            assert calendar.is_trading_day(date(2030, 1, 1)) is True
            assert calendar.is_trading_day(date(2030, 1, 2)) is True
            assert calendar.is_trading_day(date(2030, 1, 5)) is False

        warnings = [r for r in caplog.records if "No holiday table" in r.getMessage()]
        assert len(warnings) == 1
        assert calendar.covers(date(2030, 1, 1)) is False
        assert calendar.covers(date(2025, 1, 1)) is True


# ---------------------------------------------------------------------------
# Session status
# ---------------------------------------------------------------------------


class TestSessionStatus:
    @pytest.mark.parametrize(
        ("hour", "minute", "expected"),
        [
            (9, 29, SessionStatus.PRE_OPEN),
            (9, 30, SessionStatus.OPEN),
            (15, 59, SessionStatus.OPEN),
            (16, 0, SessionStatus.POST_CLOSE),
            (23, 59, SessionStatus.POST_CLOSE),
            (0, 0, SessionStatus.PRE_OPEN),
        ],
    )
    def test_time_of_day(
        self, calendar: TradingCalendar, hour: int, minute: int, expected: SessionStatus,
    ) -> None:
        instant = datetime(2025, 6, 2, hour, minute, tzinfo=ET)
        assert calendar.session_status(instant) is expected

    def test_weekend(self, calendar: TradingCalendar) -> None:
        assert calendar.session_status(datetime(2025, 6, 7, 12, 0, tzinfo=ET)) is SessionStatus.WEEKEND

    def test_holiday(self, calendar: TradingCalendar) -> None:
        instant = datetime(2025, 12, 25, 17, 0, tzinfo=ET)
        assert calendar.session_status(instant) is SessionStatus.HOLIDAY

    def test_naive_datetime_is_utc(self, calendar: TradingCalendar) -> None:
        # 20:30 UTC in June is 16:30 EDT
        assert calendar.session_status(datetime(2025, 6, 2, 20, 30)) is SessionStatus.POST_CLOSE
        # 14:00 UTC in June is 10:00 EDT
        assert calendar.session_status(datetime(2025, 6, 2, 14, 0)) is SessionStatus.OPEN

    def test_converts_other_timezones(self, calendar: TradingCalendar) -> None:
        # 22:00 in London (BST) is 17:00 in New York
        london = datetime(2025, 6, 2, 22, 0, tzinfo=ZoneInfo("Europe/London"))
        assert calendar.session_status(london) is SessionStatus.POST_CLOSE

    def test_status_flags(self) -> None:
        assert SessionStatus.OPEN.is_open is True
        assert SessionStatus.POST_CLOSE.is_open is False
        assert SessionStatus.POST_CLOSE.is_trading_day is True
        assert SessionStatus.HOLIDAY.is_trading_day is False
        assert SessionStatus.WEEKEND.is_trading_day is False


class TestMarketStatus:
    def test_saturday_reason_and_next_day(self, calendar: TradingCalendar) -> None:
        status = calendar.market_status(datetime(2025, 6, 7, 12, 0, tzinfo=ET))
        assert status.reason == "Saturday"
        assert status.is_trading_day is False
        assert status.next_trading_day == date(2025, 6, 9)

    def test_sunday_reason(self, calendar: TradingCalendar) -> None:
        status = calendar.market_status(datetime(2025, 6, 8, 12, 0, tzinfo=ET))
        assert status.reason == "Sunday"

    def test_holiday_reason(self, calendar: TradingCalendar) -> None:
        status = calendar.market_status(datetime(2025, 7, 4, 12, 0, tzinfo=ET))
        assert status.reason == "Market Holiday"
        assert status.next_trading_day == date(2025, 7, 7)

    def test_trading_day_reasons(self, calendar: TradingCalendar) -> None:
        assert calendar.market_status(datetime(2025, 6, 2, 8, 0, tzinfo=ET)).reason == "Before Market Open"
        assert calendar.market_status(datetime(2025, 6, 2, 11, 0, tzinfo=ET)).reason == "Market Open"
        closed = calendar.market_status(datetime(2025, 6, 2, 17, 0, tzinfo=ET))
        assert closed.reason == "After Market Close"
        assert closed.next_trading_day is None
        assert closed.is_open is False


# ---------------------------------------------------------------------------
# Stepping
# ---------------------------------------------------------------------------


class TestStepping:
    def test_next_trading_day_skips_weekend(self, calendar: TradingCalendar) -> None:
        assert calendar.next_trading_day(date(2025, 6, 6)) == date(2025, 6, 9)

    def test_next_trading_day_skips_holiday_and_weekend(self, calendar: TradingCalendar) -> None:
        assert calendar.next_trading_day(date(2025, 7, 3)) == date(2025, 7, 7)

    def test_next_trading_day_over_thanksgiving(self, calendar: TradingCalendar) -> None:
        assert calendar.next_trading_day(date(2025, 11, 26)) == date(2025, 12, 1)

    def test_next_trading_day_plain_weekday(self, calendar: TradingCalendar) -> None:
        assert calendar.next_trading_day(date(2025, 6, 2)) == date(2025, 6, 3)

    def test_previous_trading_day(self, calendar: TradingCalendar) -> None:
        assert calendar.previous_trading_day(date(2025, 7, 7)) == date(2025, 7, 3)
        assert calendar.previous_trading_day(date(2025, 6, 9)) == date(2025, 6, 6)

    def test_next_trading_day_outside_table(self, calendar: TradingCalendar) -> None:
        assert calendar.next_trading_day(date(2030, 1, 4)) == date(2030, 1, 7)

    def test_last_trading_day(self, calendar: TradingCalendar) -> None:
        assert calendar.last_trading_day(date(2025, 6, 8)) == date(2025, 6, 6)
        assert calendar.last_trading_day(date(2025, 6, 4)) == date(2025, 6, 4)

    def test_can_generate_predictions(self, calendar: TradingCalendar) -> None:
        assert calendar.can_generate_predictions(date(2025, 6, 4)) is True
        assert calendar.can_generate_predictions(date(2025, 12, 25)) is False
