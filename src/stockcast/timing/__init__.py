from stockcast.timing.calendar import MarketStatus, SessionStatus, TradingCalendar

__all__ = [
    "MarketStatus",
    "SessionStatus",
    "TradingCalendar",
]
