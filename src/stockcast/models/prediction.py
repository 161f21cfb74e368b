from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import StrEnum

DEFAULT_PRICE_THRESHOLD = Decimal("5.0")


class Horizon(StrEnum):
    ONE_DAY = "1d"
    ONE_WEEK = "1w"
    ONE_MONTH = "1m"

    @property
    def column_prefix(self) -> str:
        return _COLUMN_PREFIXES[self]


_COLUMN_PREFIXES = {
    Horizon.ONE_DAY: "one_day",
    Horizon.ONE_WEEK: "one_week",
    Horizon.ONE_MONTH: "one_month",
}


class Direction(StrEnum):
    UP = "up"
    DOWN = "down"
    SIDEWAYS = "sideways"

    @classmethod
    def parse(cls, raw: str | None) -> Direction | None:
        """Case-insensitive lookup; None for anything unrecognised."""
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Verdict:
    """Evaluation outputs for one horizon, written together."""

    actual_price: Decimal
    price_accurate: bool
    direction_accurate: bool
    overall_accurate: bool
    weighted_score: Decimal
    evaluated_at: datetime


@dataclass
class HorizonForecast:
    predicted_price: Decimal
    predicted_direction: Direction | None
    confidence: int
    price_threshold: Decimal = DEFAULT_PRICE_THRESHOLD
    verdict: Verdict | None = None

    @property
    def is_evaluated(self) -> bool:
        return self.verdict is not None


@dataclass
class Prediction:
    symbol: str
    created_at: datetime
    price_at_creation: Decimal
    forecasts: dict[Horizon, HorizonForecast] = field(default_factory=dict)
    user_id: str | None = None
    last_evaluated_at: datetime | None = None
    id: int | None = None

    def pending_horizons(self) -> list[Horizon]:
        """Horizons (in Horizon order) that still have no verdict."""
        return [
            h for h in Horizon
            if h in self.forecasts and not self.forecasts[h].is_evaluated
        ]

    def evaluated(self, horizon: Horizon) -> Verdict | None:
        forecast = self.forecasts.get(horizon)
        return forecast.verdict if forecast is not None else None
