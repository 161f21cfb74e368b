from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation

from stockcast.models.prediction import (
    DEFAULT_PRICE_THRESHOLD,
    Direction,
    HorizonForecast,
    Verdict,
)

DIRECTION_DEAD_BAND_PCT = Decimal("1")
_HUNDRED = Decimal("100")


class ScoringError(ValueError):
    """Forecast or price data that cannot produce a meaningful verdict."""


def _as_decimal(value, name: str) -> Decimal:
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ScoringError(f"{name} is not numeric: {value!r}") from None
    if not result.is_finite():
        raise ScoringError(f"{name} is not finite: {value!r}")
    return result


def price_error_pct(predicted_price: Decimal, actual_price: Decimal) -> Decimal:
    return abs(predicted_price - actual_price) / actual_price * _HUNDRED


def change_pct(price_at_creation: Decimal, actual_price: Decimal) -> Decimal:
    return (actual_price - price_at_creation) / price_at_creation * _HUNDRED


def classify_direction(actual_change_pct: Decimal) -> Direction:
    """Moves within +/-1% (inclusive) count as sideways."""
    if actual_change_pct > DIRECTION_DEAD_BAND_PCT:
        return Direction.UP
    if actual_change_pct < -DIRECTION_DEAD_BAND_PCT:
        return Direction.DOWN
    return Direction.SIDEWAYS


def evaluate(
    forecast: HorizonForecast,
    price_at_creation: Decimal,
    actual_price: Decimal,
    evaluated_at: datetime,
) -> Verdict:
    """Score one horizon forecast against the realized price.

    Price accuracy holds when the error is within the forecast's threshold
    (inclusive). Overall accuracy needs both price and direction; the weighted
    score is confidence/100 for an overall-accurate call and zero otherwise.

    Raises:
        ScoringError: confidence outside [0, 100], non-positive prices,
            negative threshold or an unknown predicted direction.
    """
    base = _as_decimal(price_at_creation, "price_at_creation")
    actual = _as_decimal(actual_price, "actual_price")
    predicted = _as_decimal(forecast.predicted_price, "predicted_price")
    threshold = _as_decimal(
        forecast.price_threshold if forecast.price_threshold is not None
        else DEFAULT_PRICE_THRESHOLD,
        "price_threshold",
    )
    confidence = _as_decimal(forecast.confidence, "confidence")

    if base <= 0:
        raise ScoringError(f"price_at_creation must be positive, got {base}")
    if actual <= 0:
        raise ScoringError(f"actual_price must be positive, got {actual}")
    if predicted <= 0:
        raise ScoringError(f"predicted_price must be positive, got {predicted}")
    if threshold < 0:
        raise ScoringError(f"price_threshold must be non-negative, got {threshold}")
    if not (0 <= confidence <= 100):
        raise ScoringError(f"confidence must be between 0 and 100, got {confidence}")
    if not isinstance(forecast.predicted_direction, Direction):
        raise ScoringError(
            f"unknown predicted direction: {forecast.predicted_direction!r}"
        )

    price_accurate = price_error_pct(predicted, actual) <= threshold
    actual_direction = classify_direction(change_pct(base, actual))
    direction_accurate = forecast.predicted_direction is actual_direction
    overall_accurate = price_accurate and direction_accurate

    base_score = Decimal("1") if overall_accurate else Decimal("0")
    weighted_score = base_score * confidence / _HUNDRED

    return Verdict(
        actual_price=actual,
        price_accurate=price_accurate,
        direction_accurate=direction_accurate,
        overall_accurate=overall_accurate,
        weighted_score=weighted_score,
        evaluated_at=evaluated_at,
    )
