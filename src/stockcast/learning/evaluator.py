"""Background evaluation of outstanding forecasts.

Outside the post-close session a pass returns without touching the store.
Otherwise it lists predictions with pending horizons, decides which are
due, fetches one latest price per symbol (in a small thread pool), scores each
due horizon and writes the verdict with a conditional update. Passes
never overlap: a pass that finds another one running is skipped.

Designed to run as a background task in the FastAPI lifespan, or one-shot
from the CLI.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from stockcast.data.price_oracle import PriceOracle, to_price
from stockcast.learning.eligibility import is_due
from stockcast.learning.scoring import ScoringError, evaluate
from stockcast.models.prediction import Horizon, Prediction
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import SessionStatus, TradingCalendar

logger = logging.getLogger(__name__)

POST_CLOSE_INTERVAL = timedelta(minutes=30)
DEFAULT_INTERVAL = timedelta(hours=2)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class PassResult:
    started_at: datetime
    session_status: SessionStatus | None = None
    skipped: bool = False
    error: str | None = None
    predictions_scanned: int = 0
    horizons_due: int = 0
    evaluated: int = 0
    already_evaluated: int = 0
    price_failures: int = 0
    scoring_rejections: int = 0
    write_failures: int = 0
    predictions_touched: int = 0
    evaluated_ids: list[tuple[int, Horizon]] = field(default_factory=list)
    duration_seconds: float = 0.0

    def as_dict(self) -> dict:
        return {
            "startedAt": self.started_at.isoformat(),
            "sessionStatus": self.session_status.value if self.session_status else None,
            "skipped": self.skipped,
            "error": self.error,
            "predictionsScanned": self.predictions_scanned,
            "horizonsDue": self.horizons_due,
            "evaluated": self.evaluated,
            "alreadyEvaluated": self.already_evaluated,
            "priceFailures": self.price_failures,
            "scoringRejections": self.scoring_rejections,
            "writeFailures": self.write_failures,
            "predictionsTouched": self.predictions_touched,
            "durationSeconds": round(self.duration_seconds, 3),
        }


class EvaluationEngine:
    """Drives scoring across all outstanding predictions."""

    def __init__(
        self,
        registry: PredictionRegistry,
        oracle: PriceOracle,
        calendar: TradingCalendar,
        *,
        max_workers: int = 4,
        post_close_interval: timedelta = POST_CLOSE_INTERVAL,
        default_interval: timedelta = DEFAULT_INTERVAL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._oracle = oracle
        self._calendar = calendar
        self._max_workers = max(1, max_workers)
        self._post_close_interval = post_close_interval
        self._default_interval = default_interval
        self._clock = clock
        self._guard = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._guard.locked()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no pass is running. False if ``timeout`` ran out first."""
        acquired = self._guard.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._guard.release()
        return acquired

    def trigger_evaluation_pass(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> PassResult:
        """Manual trigger; shares the run guard with the scheduled cadence."""
        logger.info("Manual evaluation pass requested")
        return self.run_pass(symbol=symbol, user_id=user_id)

    def run_pass(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> PassResult:
        """Run one evaluation pass unless another is already in progress."""
        result = PassResult(started_at=self._clock())
        if not self._guard.acquire(blocking=False):
            logger.info("Evaluation pass already in progress; skipping")
            result.skipped = True
            return result

        start = time.monotonic()
        try:
            self._run(result, symbol, user_id)
        finally:
            self._guard.release()
            result.duration_seconds = time.monotonic() - start

        logger.info(
            "Evaluation pass done: %d scanned, %d due, %d evaluated, "
            "%d price failures, %d rejected, %d write failures (%.1fs)",
            result.predictions_scanned, result.horizons_due, result.evaluated,
            result.price_failures, result.scoring_rejections, result.write_failures,
            result.duration_seconds,
        )
        return result

    def next_interval(self, now: datetime | None = None) -> timedelta:
        """Tick faster after the close, when most horizons become due."""
        status = self._calendar.session_status(now or self._clock())
        if status is SessionStatus.POST_CLOSE:
            return self._post_close_interval
        return self._default_interval

    # ------------------------------------------------------------------
    # Pass internals
    # ------------------------------------------------------------------

    def _run(self, result: PassResult, symbol: str | None, user_id: str | None) -> None:
        now = self._clock()
        status = self._calendar.session_status(now)
        result.session_status = status
        if status is not SessionStatus.POST_CLOSE:
            # Nothing can be due outside the post-close session.
            logger.debug("Session is %s; no horizons can be due", status.value)
            return

        try:
            predictions = self._registry.list_outstanding(symbol=symbol, user_id=user_id)
        except Exception as exc:
            logger.exception("Could not list outstanding predictions")
            result.error = str(exc)
            return

        result.predictions_scanned = len(predictions)

        due = self._collect_due(predictions, now, status)
        result.horizons_due = len(due)
        if not due:
            return

        prices = self._fetch_prices({pred.symbol for pred, _ in due})

        touched: set[int] = set()
        for pred, horizon in due:
            if self._evaluate_horizon(pred, horizon, prices.get(pred.symbol), now, result):
                touched.add(pred.id)  # type: ignore[arg-type]

        for prediction_id in sorted(touched):
            try:
                self._registry.touch(prediction_id, now)
                result.predictions_touched += 1
            except Exception:
                logger.exception("Could not update last_evaluated_at for %s", prediction_id)

    @staticmethod
    def _collect_due(
        predictions: list[Prediction], now: datetime, status: SessionStatus,
    ) -> list[tuple[Prediction, Horizon]]:
        return [
            (pred, horizon)
            for pred in predictions
            for horizon in pred.pending_horizons()
            if is_due(horizon, pred.created_at, now, status)
        ]

    def _fetch_prices(self, symbols: set[str]) -> dict[str, Decimal]:
        """Latest price per symbol; symbols without a usable price are omitted."""
        prices: dict[str, Decimal] = {}
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(symbols))) as executor:
            futures = {
                executor.submit(self._oracle.get_latest_price, s): s for s in symbols
            }
            for future in as_completed(futures):
                sym = futures[future]
                try:
                    price = to_price(future.result())
                except Exception:
                    logger.warning("Price lookup raised for %s", sym, exc_info=True)
                    continue
                if price is None:
                    logger.warning("No usable price for %s; leaving its horizons pending", sym)
                    continue
                prices[sym] = price
        return prices

    def _evaluate_horizon(
        self,
        pred: Prediction,
        horizon: Horizon,
        actual_price: Decimal | None,
        now: datetime,
        result: PassResult,
    ) -> bool:
        """Score and persist one horizon. Returns True if this call wrote it."""
        if actual_price is None:
            result.price_failures += 1
            return False

        try:
            verdict = evaluate(pred.forecasts[horizon], pred.price_at_creation, actual_price, now)
        except ScoringError as exc:
            logger.error(
                "Refusing to score %s prediction %s (%s): %s",
                pred.symbol, pred.id, horizon.value, exc,
            )
            result.scoring_rejections += 1
            return False

        try:
            written = self._registry.try_evaluate_horizon(pred.id, horizon, verdict)  # type: ignore[arg-type]
        except Exception:
            logger.exception(
                "Could not store %s verdict for prediction %s", horizon.value, pred.id,
            )
            result.write_failures += 1
            return False

        if not written:
            logger.info(
                "%s horizon of prediction %s was already evaluated", horizon.value, pred.id,
            )
            result.already_evaluated += 1
            return False

        result.evaluated += 1
        result.evaluated_ids.append((pred.id, horizon))  # type: ignore[arg-type]
        logger.info(
            "%s %s prediction evaluated: predicted=%s actual=%s accurate=%s score=%s",
            pred.symbol, horizon.value, pred.forecasts[horizon].predicted_price,
            verdict.actual_price, verdict.overall_accurate, verdict.weighted_score,
        )
        return True


async def evaluation_loop(engine: EvaluationEngine, startup_delay_seconds: float = 30) -> None:
    """Background task: run a pass, then sleep for the session-dependent interval."""
    await asyncio.sleep(startup_delay_seconds)

    while True:
        try:
            await asyncio.to_thread(engine.run_pass)
        except Exception:
            logger.exception("Evaluation loop iteration failed")

        interval = engine.next_interval()
        logger.debug("Next evaluation pass in %s", interval)
        await asyncio.sleep(interval.total_seconds())
