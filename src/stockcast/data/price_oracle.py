"""Latest-price sources used to settle forecasts.

Every oracle returns a positive Decimal or None. Data gaps and provider
errors are logged and reported as None, never raised.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import yfinance as yf

from stockcast.config import AppConfig

logger = logging.getLogger(__name__)

FMP_BASE_URL = "https://financialmodelingprep.com/api"


def to_price(value: Any) -> Decimal | None:
    """Convert a provider value to a positive Decimal, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


@dataclass
class CircuitBreaker:
    """Trips when the failure rate over a sliding window crosses a threshold."""

    threshold: float = 0.50
    window_seconds: int = 300
    min_calls: int = 20
    _successes: deque[float] = field(default_factory=deque)
    _failures: deque[float] = field(default_factory=deque)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def record_success(self) -> None:
        with self._lock:
            self._prune()
            self._successes.append(time.monotonic())

    def record_failure(self) -> None:
        with self._lock:
            self._prune()
            self._failures.append(time.monotonic())

    def _prune(self) -> None:
        cutoff = time.monotonic() - self.window_seconds
        while self._successes and self._successes[0] < cutoff:
            self._successes.popleft()
        while self._failures and self._failures[0] < cutoff:
            self._failures.popleft()

    @property
    def failure_rate(self) -> float:
        with self._lock:
            self._prune()
            total = len(self._successes) + len(self._failures)
            return len(self._failures) / total if total else 0.0

    @property
    def is_tripped(self) -> bool:
        with self._lock:
            self._prune()
            total = len(self._successes) + len(self._failures)
        if total < self.min_calls:
            return False
        return self.failure_rate >= self.threshold

    def reset(self) -> None:
        with self._lock:
            self._successes.clear()
            self._failures.clear()


class PriceOracle(abc.ABC):
    """Base oracle: short-lived cache, circuit breaker and price validation.

    Safe to call from several threads at once.
    """

    name = "oracle"

    def __init__(self, cache_ttl_seconds: int = 300) -> None:
        self._cache: dict[str, tuple[Decimal, datetime]] = {}
        self._cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._cache_lock = threading.Lock()
        self._circuit_breaker = CircuitBreaker()

    def get_latest_price(self, symbol: str) -> Decimal | None:
        symbol = symbol.upper()
        cached = self._get_cached(symbol)
        if cached is not None:
            return cached

        if self._circuit_breaker.is_tripped:
            logger.warning(
                "%s circuit breaker tripped (failure_rate=%.2f), skipping %s",
                self.name, self._circuit_breaker.failure_rate, symbol,
            )
            return None

        try:
            raw = self._fetch_price(symbol)
        except Exception:
            logger.exception("%s price fetch failed for %s", self.name, symbol)
            self._circuit_breaker.record_failure()
            return None

        price = to_price(raw)
        if price is None:
            logger.warning("%s returned no usable price for %s: %r", self.name, symbol, raw)
            self._circuit_breaker.record_failure()
            return None

        self._circuit_breaker.record_success()
        self._set_cached(symbol, price)
        return price

    @abc.abstractmethod
    def _fetch_price(self, symbol: str) -> Any:
        """Return the provider's raw latest price (any type) or None."""

    def close(self) -> None:
        """Release provider resources. No-op by default."""

    def _get_cached(self, key: str) -> Decimal | None:
        with self._cache_lock:
            if key in self._cache:
                value, cached_at = self._cache[key]
                if datetime.now(UTC) - cached_at < self._cache_ttl:
                    return value
                del self._cache[key]
        return None

    def _set_cached(self, key: str, value: Decimal) -> None:
        with self._cache_lock:
            self._cache[key] = (value, datetime.now(UTC))


class YFinancePriceOracle(PriceOracle):
    name = "yfinance"

    def _fetch_price(self, symbol: str) -> Any:
        info = yf.Ticker(symbol).info
        return info.get("currentPrice") or info.get("regularMarketPrice")


class FMPPriceOracle(PriceOracle):
    """Financial Modeling Prep quote endpoint."""

    name = "fmp"

    def __init__(
        self,
        api_key: str,
        cache_ttl_seconds: int = 300,
        client: httpx.Client | None = None,
        base_url: str = FMP_BASE_URL,
    ) -> None:
        super().__init__(cache_ttl_seconds)
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=httpx.Timeout(15.0))
        self._base_url = base_url.rstrip("/")

    def _fetch_price(self, symbol: str) -> Any:
        if not self._api_key:
            logger.error("FMP API key not configured")
            return None
        try:
            resp = self._client.get(
                f"{self._base_url}/v3/quote/{symbol}",
                params={"apikey": self._api_key},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("FMP quote request failed for %s: %s", symbol, exc)
            return None

        if isinstance(data, list) and data:
            return data[0].get("price")
        return None

    def close(self) -> None:
        self._client.close()


def build_price_oracle(config: AppConfig) -> PriceOracle:
    if config.price_source == "fmp":
        return FMPPriceOracle(config.fmp_api_key, cache_ttl_seconds=config.price_cache_ttl_seconds)
    if config.price_source != "yfinance":
        logger.warning("Unknown PRICE_SOURCE %r, falling back to yfinance", config.price_source)
    return YFinancePriceOracle(cache_ttl_seconds=config.price_cache_ttl_seconds)
