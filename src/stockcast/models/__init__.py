from __future__ import annotations

from stockcast.models.prediction import (
    DEFAULT_PRICE_THRESHOLD,
    Direction,
    Horizon,
    HorizonForecast,
    Prediction,
    Verdict,
)

__all__ = [
    "DEFAULT_PRICE_THRESHOLD",
    "Direction",
    "Horizon",
    "HorizonForecast",
    "Prediction",
    "Verdict",
]
