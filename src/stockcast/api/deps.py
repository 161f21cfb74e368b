"""Dependency injection for the FastAPI application."""

from __future__ import annotations

from stockcast.config import AppConfig
from stockcast.data.price_oracle import PriceOracle
from stockcast.learning.accuracy import AccuracyAggregator
from stockcast.learning.calibration import CalibrationEngine
from stockcast.learning.evaluator import EvaluationEngine
from stockcast.registry.db import Database
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import TradingCalendar


class AppState:
    """Holds services constructed during lifespan (or injected by tests)."""

    def __init__(self) -> None:
        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.registry: PredictionRegistry | None = None
        self.calendar: TradingCalendar | None = None
        self.oracle: PriceOracle | None = None
        self.engine: EvaluationEngine | None = None
        self.aggregator: AccuracyAggregator | None = None
        self.calibration_engine: CalibrationEngine | None = None

    def reset(self) -> None:
        self.__init__()


app_state = AppState()


def get_registry() -> PredictionRegistry:
    if app_state.registry is None:
        raise RuntimeError("PredictionRegistry not initialised")
    return app_state.registry


def get_calendar() -> TradingCalendar:
    if app_state.calendar is None:
        raise RuntimeError("TradingCalendar not initialised")
    return app_state.calendar


def get_engine() -> EvaluationEngine:
    if app_state.engine is None:
        raise RuntimeError("EvaluationEngine not initialised")
    return app_state.engine


def get_aggregator() -> AccuracyAggregator:
    if app_state.aggregator is None:
        raise RuntimeError("AccuracyAggregator not initialised")
    return app_state.aggregator


def get_calibration_engine() -> CalibrationEngine:
    if app_state.calibration_engine is None:
        raise RuntimeError("CalibrationEngine not initialised")
    return app_state.calibration_engine
