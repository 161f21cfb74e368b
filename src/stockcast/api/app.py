"""FastAPI application factory with CORS and lifespan-managed services."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockcast.api.deps import app_state
from stockcast.config import load_config
from stockcast.data.price_oracle import build_price_oracle
from stockcast.learning.accuracy import AccuracyAggregator
from stockcast.learning.calibration import CalibrationEngine
from stockcast.learning.evaluator import EvaluationEngine, evaluation_loop
from stockcast.registry.db import Database
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import TradingCalendar

logger = logging.getLogger(__name__)

API_PREFIX = "/api/stockcast"
SHUTDOWN_PASS_WAIT_SECONDS = 120


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service graph, start the evaluation loop, tear down on exit."""
    config = load_config()

    db = Database(config.db_dsn)
    db.connect()
    registry = PredictionRegistry(db)
    calendar = TradingCalendar(config.market_timezone)
    oracle = build_price_oracle(config)

    engine = EvaluationEngine(
        registry,
        oracle,
        calendar,
        max_workers=config.evaluation_max_workers,
        post_close_interval=timedelta(minutes=config.post_close_interval_minutes),
        default_interval=timedelta(minutes=config.default_interval_minutes),
    )

    app_state.config = config
    app_state.db = db
    app_state.registry = registry
    app_state.calendar = calendar
    app_state.oracle = oracle
    app_state.engine = engine
    app_state.aggregator = AccuracyAggregator(registry)
    app_state.calibration_engine = CalibrationEngine(registry)

    bg_tasks: list[asyncio.Task] = []
    if config.enable_evaluation_loop:
        bg_tasks.append(asyncio.create_task(
            evaluation_loop(engine, config.evaluation_startup_delay_seconds),
        ))
    logger.info(
        "API started (price source=%s, evaluation loop=%s)",
        config.price_source, config.enable_evaluation_loop,
    )
    yield

    for task in bg_tasks:
        task.cancel()
    await asyncio.gather(*bg_tasks, return_exceptions=True)

    # Cancelling the loop does not stop a pass already running in its thread.
    if not await asyncio.to_thread(engine.wait_idle, SHUTDOWN_PASS_WAIT_SECONDS):
        logger.warning(
            "Evaluation pass still running after %ss; closing connections anyway",
            SHUTDOWN_PASS_WAIT_SECONDS,
        )

    oracle.close()
    db.close()
    app_state.reset()
    logger.info("API shutdown complete")


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        use_lifespan: If False, skip the production lifespan (tests inject
            services into app_state directly).
    """
    app = FastAPI(
        title="Stockcast Evaluation API",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:4173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from stockcast.api.routes import evaluation, learning, system

    app.include_router(evaluation.router, prefix=API_PREFIX, tags=["evaluation"])
    app.include_router(learning.router, prefix=API_PREFIX, tags=["learning"])
    app.include_router(system.router, prefix=API_PREFIX, tags=["system"])

    return app
