"""Evaluation engine endpoints: manual trigger, engine status, prediction detail."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from stockcast.api.deps import get_calendar, get_engine, get_registry
from stockcast.learning.eligibility import eligible_from
from stockcast.learning.evaluator import EvaluationEngine
from stockcast.models.prediction import Horizon, Prediction
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import TradingCalendar

router = APIRouter()


@router.post("/evaluation/trigger")
def trigger_evaluation(
    symbol: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    engine: EvaluationEngine = Depends(get_engine),
) -> dict:
    """Run an evaluation pass now.

    A pass that is already running is reported, not treated as an error.
    """
    result = engine.trigger_evaluation_pass(symbol=symbol, user_id=user_id)
    if result.skipped:
        return {"status": "already_in_progress"}
    if result.error:
        return {"status": "failed", **result.as_dict()}
    return {"status": "completed", **result.as_dict()}


@router.get("/evaluation/status")
def evaluation_status(
    engine: EvaluationEngine = Depends(get_engine),
    calendar: TradingCalendar = Depends(get_calendar),
) -> dict:
    now = datetime.now(UTC)
    market = calendar.market_status(now)
    return {
        "running": engine.is_running,
        "sessionStatus": market.status.value,
        "reason": market.reason,
        "nextIntervalMinutes": engine.next_interval(now).total_seconds() / 60,
    }


def _prediction_to_dict(pred: Prediction) -> dict:
    horizons = {}
    for h in Horizon:
        forecast = pred.forecasts.get(h)
        if forecast is None:
            continue
        verdict = forecast.verdict
        horizons[h.value] = {
            "predictedPrice": float(forecast.predicted_price),
            "predictedDirection": (
                forecast.predicted_direction.value if forecast.predicted_direction else None
            ),
            "confidence": forecast.confidence,
            "priceThreshold": float(forecast.price_threshold),
            "state": "evaluated" if verdict else "pending",
            "eligibleFrom": eligible_from(h, pred.created_at).isoformat(),
            "actualPrice": float(verdict.actual_price) if verdict else None,
            "priceAccurate": verdict.price_accurate if verdict else None,
            "directionAccurate": verdict.direction_accurate if verdict else None,
            "overallAccurate": verdict.overall_accurate if verdict else None,
            "weightedScore": float(verdict.weighted_score) if verdict else None,
            "evaluatedAt": verdict.evaluated_at.isoformat() if verdict else None,
        }
    return {
        "id": pred.id,
        "symbol": pred.symbol,
        "userId": pred.user_id,
        "createdAt": pred.created_at.isoformat(),
        "priceAtCreation": float(pred.price_at_creation),
        "lastEvaluatedAt": pred.last_evaluated_at.isoformat() if pred.last_evaluated_at else None,
        "horizons": horizons,
    }


@router.get("/predictions/{prediction_id}")
def get_prediction(
    prediction_id: int,
    registry: PredictionRegistry = Depends(get_registry),
) -> dict:
    pred = registry.get_prediction(prediction_id)
    if pred is None:
        raise HTTPException(status_code=404, detail=f"Prediction {prediction_id} not found")
    return _prediction_to_dict(pred)
