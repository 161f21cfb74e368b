"""Tests for the FastAPI REST API layer.

Uses FastAPI TestClient with a mocked Database behind a real
PredictionRegistry. The evaluation engine is mocked; its behaviour is
covered in test_evaluator.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from stockcast.api.app import create_app
from stockcast.api.deps import app_state
from stockcast.config import AppConfig
from stockcast.learning.accuracy import AccuracyAggregator
from stockcast.learning.calibration import CalibrationEngine
from stockcast.learning.evaluator import EvaluationEngine, PassResult
from stockcast.registry.db import Database
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import SessionStatus, TradingCalendar

CREATED = datetime(2025, 6, 2, 14, 0, tzinfo=UTC)
EVALUATED = datetime(2025, 6, 3, 20, 30, tzinfo=UTC)


def _row(id: int = 1, symbol: str = "AAPL", one_day_accurate: bool | None = None) -> dict:
    row = {
        "id": id,
        "user_id": "u1",
        "symbol": symbol,
        "created_at": CREATED,
        "price_at_creation": Decimal("100"),
        "price_threshold": Decimal("5"),
        "last_evaluated_at": EVALUATED if one_day_accurate is not None else None,
    }
    for prefix in ("one_day", "one_week", "one_month"):
        row.update({
            f"{prefix}_price": Decimal("103"),
            f"{prefix}_direction": "up",
            f"{prefix}_confidence": 80,
            f"{prefix}_actual_price": None,
            f"{prefix}_price_accurate": None,
            f"{prefix}_direction_accurate": None,
            f"{prefix}_accurate": None,
            f"{prefix}_weighted_score": None,
            f"{prefix}_evaluated_at": None,
        })
    if one_day_accurate is not None:
        row.update({
            "one_day_actual_price": Decimal("104"),
            "one_day_price_accurate": one_day_accurate,
            "one_day_direction_accurate": one_day_accurate,
            "one_day_accurate": one_day_accurate,
            "one_day_weighted_score": Decimal("0.8") if one_day_accurate else Decimal("0"),
            "one_day_evaluated_at": EVALUATED,
        })
    return row


@pytest.fixture
def mock_db() -> MagicMock:
    return MagicMock(spec=Database)


@pytest.fixture
def registry(mock_db: MagicMock) -> PredictionRegistry:
    return PredictionRegistry(mock_db)


@pytest.fixture
def engine() -> MagicMock:
    mock = MagicMock(spec=EvaluationEngine)
    mock.is_running = False
    mock.next_interval.return_value = timedelta(hours=2)
    return mock


@pytest.fixture
def client(registry: PredictionRegistry, mock_db: MagicMock, engine: MagicMock) -> TestClient:
    """Create a TestClient with mocked dependencies injected into app_state."""
    app = create_app(use_lifespan=False)

    app_state.db = mock_db
    app_state.registry = registry
    app_state.calendar = TradingCalendar()
    app_state.engine = engine
    app_state.aggregator = AccuracyAggregator(registry)
    app_state.calibration_engine = CalibrationEngine(registry)

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    app_state.reset()


# ------------------------------------------------------------------
# Evaluation
# ------------------------------------------------------------------


class TestEvaluation:
    def test_trigger_completed(self, client: TestClient, engine: MagicMock) -> None:
        engine.trigger_evaluation_pass.return_value = PassResult(
            started_at=EVALUATED,
            session_status=SessionStatus.POST_CLOSE,
            horizons_due=2,
            evaluated=2,
        )

        resp = client.post("/api/stockcast/evaluation/trigger?symbol=AAPL&userId=u1")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["evaluated"] == 2
        engine.trigger_evaluation_pass.assert_called_once_with(symbol="AAPL", user_id="u1")

    def test_trigger_while_running(self, client: TestClient, engine: MagicMock) -> None:
        engine.trigger_evaluation_pass.return_value = PassResult(started_at=EVALUATED, skipped=True)

        resp = client.post("/api/stockcast/evaluation/trigger")

        assert resp.status_code == 200
        assert resp.json() == {"status": "already_in_progress"}

    def test_trigger_failed(self, client: TestClient, engine: MagicMock) -> None:
        engine.trigger_evaluation_pass.return_value = PassResult(
            started_at=EVALUATED, error="db unavailable",
        )

        data = client.post("/api/stockcast/evaluation/trigger").json()

        assert data["status"] == "failed"
        assert data["error"] == "db unavailable"

    def test_status(self, client: TestClient) -> None:
        resp = client.get("/api/stockcast/evaluation/status")

        assert resp.status_code == 200
        data = resp.json()
        assert data["running"] is False
        assert data["nextIntervalMinutes"] == 120
        assert data["sessionStatus"] in {s.value for s in SessionStatus}


class TestPredictions:
    def test_get_prediction(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(one_day_accurate=True)]

        resp = client.get("/api/stockcast/predictions/1")

        assert resp.status_code == 200
        data = resp.json()
        assert data["symbol"] == "AAPL"
        one_day = data["horizons"]["1d"]
        assert one_day["state"] == "evaluated"
        assert one_day["overallAccurate"] is True
        assert one_day["weightedScore"] == pytest.approx(0.8)
        assert data["horizons"]["1w"]["state"] == "pending"
        assert data["horizons"]["1w"]["actualPrice"] is None
        assert data["horizons"]["1w"]["eligibleFrom"] == (CREATED + timedelta(days=7)).isoformat()

    def test_get_prediction_not_found(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []
        resp = client.get("/api/stockcast/predictions/99")
        assert resp.status_code == 404


# ------------------------------------------------------------------
# Learning
# ------------------------------------------------------------------


class TestAccuracy:
    def test_empty(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = []

        data = client.get("/api/stockcast/accuracy").json()

        assert data["totalPredictions"] == 0
        assert data["overallAccuracy"] == 0.0
        assert data["topPerformingSymbols"] == []

    def test_with_evaluations(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [
            _row(1, "AAPL", one_day_accurate=True),
            _row(2, "AAPL", one_day_accurate=False),
            _row(3, "MSFT"),
        ]

        data = client.get("/api/stockcast/accuracy?symbol=AAPL").json()

        assert data["symbol"] == "AAPL"
        assert data["overallAccuracy"] == pytest.approx(50.0)
        assert data["accuracyByHorizon"]["1d"]["total"] == 2
        assert data["avgWeightedScore"] == pytest.approx(0.4)

    def test_calibration(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.execute.return_value = [_row(i, one_day_accurate=i % 2 == 0) for i in range(10)]

        data = client.get("/api/stockcast/accuracy/calibration").json()

        assert data["totalPredictions"] == 10
        assert data["buckets"] == [{"confidence": 80, "accuracy": 50.0, "count": 10}]
        assert data["ece"] == pytest.approx(0.3)
        assert data["brierScore"] == pytest.approx(0.34)
        assert data["adjustments"] == {"80": -30.0}
        assert any("Overconfident" in r for r in data["recommendations"])


# ------------------------------------------------------------------
# System
# ------------------------------------------------------------------


class TestSystem:
    def test_health(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.health_check.return_value = True

        data = client.get("/api/stockcast/system/health").json()

        assert data["status"] == "healthy"
        assert data["database"] is True
        assert "reason" in data["market"]

    def test_health_degraded(self, client: TestClient, mock_db: MagicMock) -> None:
        mock_db.health_check.return_value = False
        data = client.get("/api/stockcast/system/health").json()
        assert data["status"] == "degraded"

    def test_uninitialised_service(self, mock_db: MagicMock) -> None:
        app = create_app(use_lifespan=False)
        app_state.reset()
        with TestClient(app, raise_server_exceptions=False) as c:
            resp = c.get("/api/stockcast/system/health")
        assert resp.status_code == 500


# ------------------------------------------------------------------
# Lifespan
# ------------------------------------------------------------------


class TestLifespan:
    def test_shutdown_waits_for_loop_and_pass(self) -> None:
        events: list[str] = []
        started = threading.Event()

        async def fake_loop(engine, startup_delay):
            events.append("loop started")
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                events.append("loop cancelled")
                raise

        config = AppConfig(db_dsn="", enable_evaluation_loop=True)
        with (
            patch("stockcast.api.app.load_config", return_value=config),
            patch("stockcast.api.app.Database") as mock_db_cls,
            patch("stockcast.api.app.build_price_oracle") as mock_build_oracle,
            patch("stockcast.api.app.EvaluationEngine") as mock_engine_cls,
            patch("stockcast.api.app.evaluation_loop", fake_loop),
        ):
            engine = mock_engine_cls.return_value
            engine.wait_idle.side_effect = lambda timeout: events.append("engine idle") or True
            mock_db_cls.return_value.close.side_effect = lambda: events.append("db closed")

            with TestClient(create_app(use_lifespan=True)):
                assert app_state.engine is engine
                assert started.wait(timeout=5)

        assert events == ["loop started", "loop cancelled", "engine idle", "db closed"]
        mock_build_oracle.return_value.close.assert_called_once()
        assert app_state.registry is None

    def test_shutdown_closes_connections_when_pass_overruns(self, caplog) -> None:
        config = AppConfig(db_dsn="", enable_evaluation_loop=False)
        with (
            patch("stockcast.api.app.load_config", return_value=config),
            patch("stockcast.api.app.Database") as mock_db_cls,
            patch("stockcast.api.app.build_price_oracle"),
            patch("stockcast.api.app.EvaluationEngine") as mock_engine_cls,
        ):
            mock_engine_cls.return_value.wait_idle.return_value = False
            with caplog.at_level("WARNING", logger="stockcast.api.app"):
                with TestClient(create_app(use_lifespan=True)):
                    pass

        mock_db_cls.return_value.close.assert_called_once()
        assert "still running" in caplog.text
