"""System health endpoint."""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from stockcast.api.deps import get_calendar, get_registry
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import TradingCalendar

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health_check(
    registry: PredictionRegistry = Depends(get_registry),
    calendar: TradingCalendar = Depends(get_calendar),
) -> dict:
    db_ok = registry.db.health_check()
    market = calendar.market_status(datetime.now(UTC))
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "market": {
            "status": market.status.value,
            "reason": market.reason,
            "isOpen": market.is_open,
            "isTradingDay": market.is_trading_day,
            "nextTradingDay": (
                market.next_trading_day.isoformat() if market.next_trading_day else None
            ),
            "holidayTableCovered": calendar.covers(market.local_time.date()),
        },
        "uptime": int(time.time() - _start_time),
    }
