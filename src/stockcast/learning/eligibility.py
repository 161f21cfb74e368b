"""Decides when a forecast horizon becomes judgeable.

A horizon is only evaluated once the session has closed for the day, so the
realized price is a settled close rather than an intraday print. Elapsed time
is measured in wall-clock time from the forecast's creation, not in trading
days.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from stockcast.models.prediction import Horizon
from stockcast.timing.calendar import SessionStatus

ONE_DAY = timedelta(days=1)
SAME_DAY_MIN_ELAPSED = timedelta(minutes=30)

MIN_ELAPSED: dict[Horizon, timedelta] = {
    Horizon.ONE_DAY: ONE_DAY,
    Horizon.ONE_WEEK: timedelta(days=7),
    Horizon.ONE_MONTH: timedelta(days=30),
}


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def elapsed_since(created_at: datetime, now: datetime) -> timedelta:
    return _aware(now) - _aware(created_at)


def is_due(
    horizon: Horizon,
    created_at: datetime,
    now: datetime,
    session_status: SessionStatus,
) -> bool:
    """True when ``horizon`` may be evaluated at ``now``."""
    if session_status is not SessionStatus.POST_CLOSE:
        return False

    elapsed = elapsed_since(created_at, now)

    if horizon is Horizon.ONE_DAY:
        if elapsed >= ONE_DAY:
            return True
        # Same-session forecast: judge it after today's close.
        return elapsed >= SAME_DAY_MIN_ELAPSED

    return elapsed >= MIN_ELAPSED[horizon]


def eligible_from(horizon: Horizon, created_at: datetime) -> datetime:
    """Earliest wall-clock instant the elapsed-time condition can hold.

    The session must additionally be post-close at that point.
    """
    if horizon is Horizon.ONE_DAY:
        return _aware(created_at) + SAME_DAY_MIN_ELAPSED
    return _aware(created_at) + MIN_ELAPSED[horizon]
