"""Confidence calibration: does an 80%-confidence call come true ~80% of the time?

Forecasts are bucketed by stated confidence into 10-point buckets centred on
multiples of 10 (e.g. 75-84 -> 80). Each non-empty bucket reports realized
accuracy on settled 1-day horizons. Expected calibration error (ECE) and the
Brier score summarise the whole distribution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal

from stockcast.models.prediction import Horizon, Prediction
from stockcast.registry.queries import PredictionRegistry

logger = logging.getLogger(__name__)

BUCKET_WIDTH = 10
MIN_BUCKET_SAMPLES = 5


def bucket_for(confidence: int | Decimal) -> int:
    """Bucket centre for a 0-100 confidence (half-width 5, upper edge exclusive)."""
    shifted = (Decimal(str(confidence)) + BUCKET_WIDTH // 2) / BUCKET_WIDTH
    return int(shifted.to_integral_value(rounding=ROUND_FLOOR)) * BUCKET_WIDTH


@dataclass
class CalibrationBucket:
    confidence: int
    count: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.count if self.count > 0 else 0.0

    @property
    def accuracy_pct(self) -> float:
        return self.accuracy * 100

    @property
    def gap(self) -> float:
        """|realized accuracy - stated confidence| as a fraction."""
        return abs(self.accuracy - self.confidence / 100)


@dataclass
class CalibrationReport:
    total_settled: int
    total_correct: int
    buckets: list[CalibrationBucket]
    ece: float
    brier: float
    recommendations: list[str] = field(default_factory=list)

    @property
    def overall_accuracy(self) -> float:
        return self.total_correct / self.total_settled if self.total_settled > 0 else 0.0

    def points(self) -> list[tuple[int, float, int]]:
        """(bucket confidence, realized accuracy %, sample count) per bucket."""
        return [(b.confidence, b.accuracy_pct, b.count) for b in self.buckets]


def one_day_samples(predictions: list[Prediction]) -> list[tuple[int, bool]]:
    samples: list[tuple[int, bool]] = []
    for pred in predictions:
        forecast = pred.forecasts.get(Horizon.ONE_DAY)
        if forecast is None or forecast.verdict is None:
            continue
        samples.append((forecast.confidence, forecast.verdict.overall_accurate))
    return samples


class CalibrationEngine:
    """Computes calibration metrics and adjustment recommendations."""

    def __init__(self, registry: PredictionRegistry) -> None:
        self._registry = registry

    def compute_calibration(
        self, samples: list[tuple[int | Decimal, bool]],
    ) -> tuple[list[CalibrationBucket], float, float]:
        """Return (non-empty buckets in confidence order, ECE, Brier score)."""
        by_centre: dict[int, CalibrationBucket] = {}
        for conf, correct in samples:
            centre = bucket_for(conf)
            bucket = by_centre.setdefault(centre, CalibrationBucket(confidence=centre))
            bucket.count += 1
            if correct:
                bucket.correct += 1

        buckets = [by_centre[c] for c in sorted(by_centre)]
        total = len(samples)

        ece = 0.0
        brier = 0.0
        if total > 0:
            for bucket in buckets:
                ece += (bucket.count / total) * bucket.gap
            for conf, correct in samples:
                outcome = 1.0 if correct else 0.0
                brier += (float(conf) / 100 - outcome) ** 2
            brier /= total

        return buckets, ece, brier

    def generate_report(self, samples: list[tuple[int | Decimal, bool]]) -> CalibrationReport:
        buckets, ece, brier = self.compute_calibration(samples)
        return CalibrationReport(
            total_settled=len(samples),
            total_correct=sum(1 for _, c in samples if c),
            buckets=buckets,
            ece=ece,
            brier=brier,
            recommendations=self._generate_recommendations(buckets, ece, brier),
        )

    def get_calibration(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> CalibrationReport:
        """Calibration over settled 1-day horizons in scope."""
        predictions = self._registry.list_predictions(symbol=symbol, user_id=user_id)
        return self.generate_report(one_day_samples(predictions))

    def _generate_recommendations(
        self, buckets: list[CalibrationBucket], ece: float, brier: float,
    ) -> list[str]:
        recs: list[str] = []

        if ece > 0.15:
            recs.append(
                f"High calibration error (ECE={ece:.3f}). "
                "Stated confidence does not track realized accuracy."
            )
        if brier > 0.30:
            recs.append(f"High Brier score ({brier:.3f}). Forecasts are poorly calibrated overall.")

        for bucket in buckets:
            if bucket.count < MIN_BUCKET_SAMPLES:
                continue
            stated = bucket.confidence / 100
            if bucket.accuracy < stated - 0.15:
                recs.append(
                    f"Overconfident around {bucket.confidence}%: "
                    f"realized {bucket.accuracy:.0%} over {bucket.count} forecasts."
                )
            elif bucket.accuracy > stated + 0.15:
                recs.append(
                    f"Underconfident around {bucket.confidence}%: "
                    f"realized {bucket.accuracy:.0%} over {bucket.count} forecasts."
                )

        if not recs:
            recs.append("Calibration looks healthy. No adjustments needed.")
        return recs

    @staticmethod
    def get_confidence_adjustment(buckets: list[CalibrationBucket]) -> dict[int, float]:
        """Suggested confidence shift (in points) per bucket with enough samples.

        Positive means forecasts in that bucket should state more confidence.
        """
        adjustments: dict[int, float] = {}
        for bucket in buckets:
            if bucket.count < MIN_BUCKET_SAMPLES:
                continue
            gap_points = bucket.accuracy_pct - bucket.confidence
            if abs(gap_points) > 10:
                adjustments[bucket.confidence] = round(gap_points, 1)
        return adjustments
