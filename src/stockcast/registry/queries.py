from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from stockcast.models.prediction import (
    DEFAULT_PRICE_THRESHOLD,
    Direction,
    Horizon,
    HorizonForecast,
    Prediction,
    Verdict,
)
from stockcast.registry.db import Database

logger = logging.getLogger(__name__)

_TABLE = "stockcast.predictions"

_OUTSTANDING = " OR ".join(
    f"{h.column_prefix}_evaluated_at IS NULL" for h in Horizon
)

_VERDICT_FIELDS = (
    "actual_price", "price_accurate", "direction_accurate", "accurate", "weighted_score",
)


def _threshold_column(horizon: Horizon) -> str:
    # The 1-day threshold keeps the price_threshold column name.
    if horizon is Horizon.ONE_DAY:
        return "price_threshold"
    return f"{horizon.column_prefix}_price_threshold"


class PredictionRegistry:
    """Query layer between Prediction models and the predictions table.

    Verdict columns are write-once per horizon: ``try_evaluate_horizon`` only
    updates rows whose ``<horizon>_evaluated_at`` is still NULL.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_prediction(self, prediction: Prediction) -> int:
        """Insert a freshly generated prediction. Returns its id."""
        columns = ["user_id", "symbol", "created_at", "price_at_creation"]
        values: list = [
            prediction.user_id,
            prediction.symbol.upper(),
            prediction.created_at,
            prediction.price_at_creation,
        ]
        for h in Horizon:
            forecast = prediction.forecasts[h]
            p = h.column_prefix
            columns += [
                f"{p}_price", f"{p}_direction", f"{p}_confidence", _threshold_column(h),
            ]
            values += [
                forecast.predicted_price,
                forecast.predicted_direction.value if forecast.predicted_direction else None,
                forecast.confidence,
                forecast.price_threshold,
            ]

        placeholders = ", ".join(["%s"] * len(columns))
        rows = self._db.execute(
            f"INSERT INTO {_TABLE} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING id",
            tuple(values),
        )
        return rows[0]["id"]

    def try_evaluate_horizon(
        self, prediction_id: int, horizon: Horizon, verdict: Verdict,
    ) -> bool:
        """Write a verdict if the horizon is still pending.

        Returns True if this call wrote it, False if the horizon was already
        evaluated (or the prediction no longer exists).
        """
        p = horizon.column_prefix
        rows = self._db.execute(
            f"UPDATE {_TABLE} SET "
            f"{p}_actual_price = %s, "
            f"{p}_price_accurate = %s, "
            f"{p}_direction_accurate = %s, "
            f"{p}_accurate = %s, "
            f"{p}_weighted_score = %s, "
            f"{p}_evaluated_at = %s, "
            f"updated_at = NOW() "
            f"WHERE id = %s AND {p}_evaluated_at IS NULL "
            f"RETURNING id",
            (
                verdict.actual_price,
                verdict.price_accurate,
                verdict.direction_accurate,
                verdict.overall_accurate,
                verdict.weighted_score,
                verdict.evaluated_at,
                prediction_id,
            ),
        )
        return len(rows) == 1

    def touch(self, prediction_id: int, now: datetime) -> None:
        """Record when the prediction last had a horizon evaluated."""
        self._db.execute(
            f"UPDATE {_TABLE} SET last_evaluated_at = %s WHERE id = %s",
            (now, prediction_id),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_outstanding(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> list[Prediction]:
        """Predictions with at least one horizon not yet evaluated."""
        return self._select(symbol, user_id, extra=f"({_OUTSTANDING})")

    def list_predictions(
        self, symbol: str | None = None, user_id: str | None = None,
    ) -> list[Prediction]:
        return self._select(symbol, user_id)

    def get_prediction(self, prediction_id: int) -> Prediction | None:
        rows = self._db.execute(
            f"SELECT * FROM {_TABLE} WHERE id = %s", (prediction_id,),
        )
        if not rows:
            return None
        return self._row_to_prediction(rows[0])

    def _select(
        self,
        symbol: str | None,
        user_id: str | None,
        extra: str | None = None,
    ) -> list[Prediction]:
        conditions: list[str] = []
        params: list = []

        if symbol is not None:
            conditions.append("symbol = %s")
            params.append(symbol.upper())
        if user_id is not None:
            conditions.append("user_id = %s")
            params.append(user_id)
        if extra is not None:
            conditions.append(extra)

        where = ""
        if conditions:
            where = "WHERE " + " AND ".join(conditions)

        rows = self._db.execute(
            f"SELECT * FROM {_TABLE} {where} ORDER BY created_at",
            tuple(params),
        )
        return [self._row_to_prediction(r) for r in rows]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_verdict(row: dict, prefix: str) -> Verdict | None:
        """Verdict columns are all-or-nothing; a partial set reads as pending."""
        evaluated_at = row.get(f"{prefix}_evaluated_at")
        if evaluated_at is None:
            return None
        missing = [f for f in _VERDICT_FIELDS if row.get(f"{prefix}_{f}") is None]
        if missing:
            logger.warning(
                "Prediction %s has a partial %s verdict (missing %s); ignoring it",
                row.get("id"), prefix, ", ".join(missing),
            )
            return None
        return Verdict(
            actual_price=Decimal(str(row[f"{prefix}_actual_price"])),
            price_accurate=bool(row[f"{prefix}_price_accurate"]),
            direction_accurate=bool(row[f"{prefix}_direction_accurate"]),
            overall_accurate=bool(row[f"{prefix}_accurate"]),
            weighted_score=Decimal(str(row[f"{prefix}_weighted_score"])),
            evaluated_at=evaluated_at,
        )

    @staticmethod
    def _row_to_threshold(row: dict, horizon: Horizon) -> Decimal:
        # Rows written before per-horizon thresholds fall back to the 1-day column.
        raw = row.get(_threshold_column(horizon))
        if raw is None:
            raw = row.get("price_threshold")
        return Decimal(str(raw)) if raw is not None else DEFAULT_PRICE_THRESHOLD

    def _row_to_prediction(self, row: dict) -> Prediction:
        forecasts: dict[Horizon, HorizonForecast] = {}
        for h in Horizon:
            p = h.column_prefix
            raw_direction = row.get(f"{p}_direction")
            direction = Direction.parse(raw_direction)
            if direction is None:
                logger.warning(
                    "Prediction %s has unrecognised %s direction %r",
                    row.get("id"), h.value, raw_direction,
                )
            forecasts[h] = HorizonForecast(
                predicted_price=Decimal(str(row[f"{p}_price"])),
                predicted_direction=direction,
                confidence=int(row[f"{p}_confidence"]),
                price_threshold=self._row_to_threshold(row, h),
                verdict=self._row_to_verdict(row, p),
            )

        return Prediction(
            id=row["id"],
            user_id=row.get("user_id"),
            symbol=row["symbol"],
            created_at=row["created_at"],
            price_at_creation=Decimal(str(row["price_at_creation"])),
            forecasts=forecasts,
            last_evaluated_at=row.get("last_evaluated_at"),
        )
