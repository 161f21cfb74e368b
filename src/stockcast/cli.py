"""CLI entry point for Stockcast.

Provides commands for the forecast evaluation engine:
  - evaluate: Run one evaluation pass (or keep running on the cadence)
  - stats: Show accuracy statistics
  - calibration: Show confidence calibration
  - market: Show trading-session status
  - migrate: Run database migrations
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta

from stockcast.config import AppConfig, load_config
from stockcast.registry.db import Database
from stockcast.registry.queries import PredictionRegistry
from stockcast.timing.calendar import TradingCalendar


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _open_registry(config: AppConfig, *, use_pool: bool = False) -> tuple[Database, PredictionRegistry]:
    db = Database(config.db_dsn, use_pool=use_pool)
    db.connect()
    return db, PredictionRegistry(db)


def _print_json(payload: dict | list) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_evaluate(args: argparse.Namespace) -> None:
    """Run an evaluation pass now; with --loop, keep ticking on the cadence."""
    from stockcast.data.price_oracle import build_price_oracle
    from stockcast.learning.evaluator import EvaluationEngine, evaluation_loop

    config = load_config()
    db, registry = _open_registry(config, use_pool=args.loop)
    oracle = build_price_oracle(config)
    try:
        engine = EvaluationEngine(
            registry,
            oracle,
            TradingCalendar(config.market_timezone),
            max_workers=config.evaluation_max_workers,
            post_close_interval=timedelta(minutes=config.post_close_interval_minutes),
            default_interval=timedelta(minutes=config.default_interval_minutes),
        )
        if args.loop:
            logging.info("Starting evaluation loop (Ctrl-C to stop)")
            try:
                asyncio.run(evaluation_loop(engine, startup_delay_seconds=0))
            except KeyboardInterrupt:
                logging.info("Evaluation loop stopped")
            return

        result = engine.trigger_evaluation_pass(symbol=args.symbol, user_id=args.user)
        _print_json(result.as_dict())
    finally:
        oracle.close()
        db.close()


def cmd_stats(args: argparse.Namespace) -> None:
    """Print accuracy statistics."""
    from stockcast.learning.accuracy import AccuracyAggregator

    config = load_config()
    db, registry = _open_registry(config)
    try:
        report = AccuracyAggregator(registry).get_accuracy_stats(
            symbol=args.symbol, user_id=args.user,
        )
        _print_json(report.as_dict())
    finally:
        db.close()


def cmd_calibration(args: argparse.Namespace) -> None:
    """Print confidence calibration for settled 1-day forecasts."""
    from stockcast.learning.calibration import CalibrationEngine

    config = load_config()
    db, registry = _open_registry(config)
    try:
        report = CalibrationEngine(registry).get_calibration(
            symbol=args.symbol, user_id=args.user,
        )
        _print_json({
            "buckets": [
                {"confidence": conf, "accuracy": round(acc, 2), "count": count}
                for conf, acc, count in report.points()
            ],
            "ece": round(report.ece, 4),
            "brier": round(report.brier, 4),
            "totalSettled": report.total_settled,
            "recommendations": report.recommendations,
        })
    finally:
        db.close()


def cmd_market(args: argparse.Namespace) -> None:
    """Print session status for now or for --at."""
    config = load_config()
    calendar = TradingCalendar(config.market_timezone)
    instant = datetime.fromisoformat(args.at) if args.at else datetime.now(UTC)
    status = calendar.market_status(instant)
    local_day = status.local_time.date()
    _print_json({
        "localTime": status.local_time.isoformat(),
        "status": status.status.value,
        "reason": status.reason,
        "isOpen": status.is_open,
        "isTradingDay": status.is_trading_day,
        "nextTradingDay": calendar.next_trading_day(local_day).isoformat(),
        "previousTradingDay": calendar.previous_trading_day(local_day).isoformat(),
        "holidayTableCovered": calendar.covers(local_day),
    })


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    db = Database(config.db_dsn, use_pool=False)
    db.connect()
    try:
        applied = db.run_migrations()
    finally:
        db.close()
    print(f"Migrations complete ({len(applied)} applied).")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="stockcast",
        description="Multi-horizon stock forecast evaluation",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    # evaluate
    p_eval = subs.add_parser("evaluate", help="Evaluate due forecast horizons")
    p_eval.add_argument("--symbol", help="Only evaluate this symbol")
    p_eval.add_argument("--user", help="Only evaluate this owner's predictions")
    p_eval.add_argument("--loop", action="store_true", help="Keep running on the session cadence")

    # stats
    p_stats = subs.add_parser("stats", help="Show accuracy statistics")
    p_stats.add_argument("--symbol", help="Restrict to one symbol")
    p_stats.add_argument("--user", help="Restrict to one owner")

    # calibration
    p_cal = subs.add_parser("calibration", help="Show confidence calibration")
    p_cal.add_argument("--symbol", help="Restrict to one symbol")
    p_cal.add_argument("--user", help="Restrict to one owner")

    # market
    p_market = subs.add_parser("market", help="Show trading-session status")
    p_market.add_argument("--at", help="ISO timestamp to check (default: now)")

    # migrate
    subs.add_parser("migrate", help="Run database migrations")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "evaluate": cmd_evaluate,
        "stats": cmd_stats,
        "calibration": cmd_calibration,
        "market": cmd_market,
        "migrate": cmd_migrate,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
