"""Read-side accuracy statistics over evaluated predictions.

Overall accuracy is pooled across horizons (total accurate / total
evaluated), so a horizon with more settled samples weighs more.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from stockcast.models.prediction import Horizon, Prediction
from stockcast.registry.queries import PredictionRegistry

logger = logging.getLogger(__name__)

TOP_SYMBOLS_LIMIT = 10


def _pct(part: int, whole: int) -> float:
    return part / whole * 100 if whole > 0 else 0.0


@dataclass
class HorizonAccuracy:
    horizon: Horizon
    evaluated: int = 0
    accurate: int = 0
    price_accurate: int = 0
    direction_accurate: int = 0

    @property
    def accuracy_pct(self) -> float:
        return _pct(self.accurate, self.evaluated)

    @property
    def price_accuracy_pct(self) -> float:
        return _pct(self.price_accurate, self.evaluated)

    @property
    def direction_accuracy_pct(self) -> float:
        return _pct(self.direction_accurate, self.evaluated)


@dataclass
class SymbolAccuracy:
    symbol: str
    total_predictions: int = 0
    evaluated: int = 0
    accurate: int = 0

    @property
    def accuracy_pct(self) -> float:
        return _pct(self.accurate, self.evaluated)


@dataclass
class AccuracyReport:
    symbol: str | None
    total_predictions: int
    horizons: dict[Horizon, HorizonAccuracy]
    avg_weighted_score: float
    top_symbols: list[SymbolAccuracy] = field(default_factory=list)

    @property
    def total_evaluated(self) -> int:
        return sum(h.evaluated for h in self.horizons.values())

    @property
    def total_accurate(self) -> int:
        return sum(h.accurate for h in self.horizons.values())

    @property
    def overall_accuracy(self) -> float:
        return _pct(self.total_accurate, self.total_evaluated)

    def as_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "totalPredictions": self.total_predictions,
            "totalEvaluated": self.total_evaluated,
            "overallAccuracy": self.overall_accuracy,
            "avgWeightedScore": self.avg_weighted_score,
            "accuracyByHorizon": {
                h.value: {
                    "total": acc.evaluated,
                    "accurate": acc.accurate,
                    "percentage": acc.accuracy_pct,
                    "priceAccuracy": acc.price_accuracy_pct,
                    "directionAccuracy": acc.direction_accuracy_pct,
                }
                for h, acc in self.horizons.items()
            },
            "topPerformingSymbols": [
                {
                    "symbol": s.symbol,
                    "accuracy": s.accuracy_pct,
                    "evaluated": s.evaluated,
                    "totalPredictions": s.total_predictions,
                }
                for s in self.top_symbols
            ],
        }


def compute_accuracy(
    predictions: list[Prediction],
    symbol: str | None = None,
    top_n: int = TOP_SYMBOLS_LIMIT,
) -> AccuracyReport:
    """Build an accuracy report from already-loaded predictions."""
    if symbol is not None:
        predictions = [p for p in predictions if p.symbol.upper() == symbol.upper()]

    horizons = {h: HorizonAccuracy(horizon=h) for h in Horizon}
    by_symbol: dict[str, SymbolAccuracy] = {}
    scores: list[Decimal] = []

    for pred in predictions:
        sym = by_symbol.setdefault(pred.symbol, SymbolAccuracy(symbol=pred.symbol))
        sym.total_predictions += 1

        for h in Horizon:
            verdict = pred.evaluated(h)
            if verdict is None:
                continue
            acc = horizons[h]
            acc.evaluated += 1
            sym.evaluated += 1
            if verdict.overall_accurate:
                acc.accurate += 1
                sym.accurate += 1
            if verdict.price_accurate:
                acc.price_accurate += 1
            if verdict.direction_accurate:
                acc.direction_accurate += 1
            if verdict.weighted_score is not None:
                scores.append(verdict.weighted_score)

    avg_score = float(sum(scores, Decimal("0")) / len(scores)) if scores else 0.0

    ranked = sorted(
        (s for s in by_symbol.values() if s.evaluated > 0),
        key=lambda s: (-s.accuracy_pct, -s.evaluated, s.symbol),
    )

    return AccuracyReport(
        symbol=symbol,
        total_predictions=len(predictions),
        horizons=horizons,
        avg_weighted_score=avg_score,
        top_symbols=ranked[:top_n],
    )


class AccuracyAggregator:
    """Computes accuracy reports from the prediction registry on demand."""

    def __init__(self, registry: PredictionRegistry) -> None:
        self._registry = registry

    def get_accuracy_stats(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> AccuracyReport:
        predictions = self._registry.list_predictions(symbol=symbol, user_id=user_id)
        report = compute_accuracy(predictions, symbol=symbol)
        logger.debug(
            "Accuracy stats (symbol=%s): %d predictions, %d evaluated, %.1f%% overall",
            symbol, report.total_predictions, report.total_evaluated, report.overall_accuracy,
        )
        return report
