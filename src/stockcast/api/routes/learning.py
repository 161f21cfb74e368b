"""Accuracy and calibration endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from stockcast.api.deps import get_aggregator, get_calibration_engine
from stockcast.learning.accuracy import AccuracyAggregator
from stockcast.learning.calibration import CalibrationEngine

router = APIRouter()


@router.get("/accuracy")
def get_accuracy(
    symbol: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    aggregator: AccuracyAggregator = Depends(get_aggregator),
) -> dict:
    return aggregator.get_accuracy_stats(symbol=symbol, user_id=user_id).as_dict()


@router.get("/accuracy/calibration")
def get_calibration(
    symbol: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    engine: CalibrationEngine = Depends(get_calibration_engine),
) -> dict:
    """Calibration over settled 1-day forecasts.

    {buckets: [{confidence, accuracy, count}], ece, brierScore,
     totalPredictions, recommendations, adjustments}
    """
    report = engine.get_calibration(symbol=symbol, user_id=user_id)
    return {
        "buckets": [
            {"confidence": conf, "accuracy": acc, "count": count}
            for conf, acc, count in report.points()
        ],
        "ece": report.ece,
        "brierScore": report.brier,
        "totalPredictions": report.total_settled,
        "recommendations": report.recommendations,
        "adjustments": {
            str(conf): shift
            for conf, shift in engine.get_confidence_adjustment(report.buckets).items()
        },
    }
