from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class DatabaseConfig:
    host: str
    port: int
    database: str
    user: str
    password: str

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    price_source: str = "yfinance"
    fmp_api_key: str = ""
    market_timezone: str = "America/New_York"
    post_close_interval_minutes: int = 30
    default_interval_minutes: int = 120
    evaluation_max_workers: int = 4
    evaluation_startup_delay_seconds: int = 30
    enable_evaluation_loop: bool = True
    price_cache_ttl_seconds: int = 300


def _database_dsn() -> str:
    """DATABASE_URL if set, otherwise a DSN assembled from the PG* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url or not os.environ.get("PGHOST"):
        return url
    return DatabaseConfig(
        host=os.environ["PGHOST"],
        port=int(os.environ.get("PGPORT", "5432")),
        database=os.environ.get("PGDATABASE", "stockcast"),
        user=os.environ.get("PGUSER", "stockcast"),
        password=os.environ.get("PGPASSWORD", ""),
    ).dsn


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads a .env file from the current directory first, if one exists.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    return AppConfig(
        db_dsn=_database_dsn(),
        price_source=os.environ.get("PRICE_SOURCE", "yfinance").strip().lower(),
        fmp_api_key=os.environ.get("FMP_API_KEY", ""),
        market_timezone=os.environ.get("MARKET_TIMEZONE", "America/New_York"),
        post_close_interval_minutes=int(os.environ.get("EVAL_POST_CLOSE_INTERVAL_MINUTES", "30")),
        default_interval_minutes=int(os.environ.get("EVAL_DEFAULT_INTERVAL_MINUTES", "120")),
        evaluation_max_workers=int(os.environ.get("EVAL_MAX_WORKERS", "4")),
        evaluation_startup_delay_seconds=int(os.environ.get("EVAL_STARTUP_DELAY_SECONDS", "30")),
        enable_evaluation_loop=os.environ.get("ENABLE_EVALUATION_LOOP", "true").lower() in _TRUTHY,
        price_cache_ttl_seconds=int(os.environ.get("PRICE_CACHE_TTL_SECONDS", "300")),
    )
