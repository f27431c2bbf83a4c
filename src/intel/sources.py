# src/intel/sources.py
"""HTTP client for the signal-aggregation endpoints.

Three independent reads (price, news, analysis) are fanned out in parallel,
each bounded by a timeout. A failing source degrades to its neutral factor
instead of failing the whole fetch; only the price has no neutral value.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

from src.exceptions import DataUnavailable
from src.intel.signal import (
    NEUTRAL_IMPACT,
    NEUTRAL_MOMENTUM,
    NEUTRAL_PRICE_STRENGTH,
    NEUTRAL_SENTIMENT,
    MarketIntelligence,
    MarketSignal,
)

logger = structlog.get_logger()
T = TypeVar("T")

TRANSIENT = (httpx.TimeoutException, httpx.NetworkError)

POSITIVE_KEYWORDS = (
    "surge", "bull", "rise", "gain", "positive",
    "adoption", "institutional", "etf", "approve",
)
NEGATIVE_KEYWORDS = (
    "drop", "bear", "fall", "decline", "negative",
    "regulation", "ban", "crash", "fear",
)
CREDIBLE_SOURCES = ("CoinDesk", "Reuters")


def is_transient(exc: BaseException) -> bool:
    """Network faults, 5xx, and 429 can clear up; other 4xx answers will not."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, TRANSIENT)


def backoff_delays(max_attempts: int, base_delay: float) -> list[float]:
    return [base_delay * (2 ** attempt) for attempt in range(max_attempts - 1)]


async def fetch_retry(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    operation: str = "",
) -> T:
    """Call an intel endpoint, retrying transient failures with doubling delays."""
    delays = backoff_delays(max_attempts, base_delay)
    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except httpx.HTTPError as e:
            if attempt == len(delays) or not is_transient(e):
                logger.warning("intel_fetch_failed", op=operation, error=str(e),
                               attempts=attempt + 1)
                raise
            logger.debug("intel_fetch_retry", op=operation, attempt=attempt + 1,
                         delay=delays[attempt], error=str(e))
            await asyncio.sleep(delays[attempt])
    raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")


# ── Factor derivations ──────────────────────────────────────────────


def analyze_sentiment(news: list[dict[str, Any]]) -> float:
    """Keyword sentiment over headlines, normalized to [-1, 1]."""
    if not news:
        return NEUTRAL_SENTIMENT

    score = 0
    checks = 0
    for item in news:
        text = f"{item.get('title') or ''} {item.get('description') or ''}".lower()
        for keyword in POSITIVE_KEYWORDS:
            if keyword in text:
                score += 1
            checks += 1
        for keyword in NEGATIVE_KEYWORDS:
            if keyword in text:
                score -= 1
            checks += 1

    return max(-1.0, min(1.0, score / max(checks, 1)))


def _published_at(item: dict[str, Any]) -> Optional[float]:
    raw = item.get("publishedAt")
    if not isinstance(raw, str) or not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def impact_score(news: list[dict[str, Any]], now: float) -> float:
    """Recency-weighted source credibility, 0-100. Fresh credible news scores high."""
    if not news:
        return NEUTRAL_IMPACT

    total = 0.0
    for item in news:
        published = _published_at(item)
        hours_old = (now - published) / 3600 if published is not None else 24.0
        recency = max(0.0, min(1.0, 1 - hours_old / 24))
        source = str(item.get("source") or "")
        credibility = 1.0 if any(s in source for s in CREDIBLE_SOURCES) else 0.7
        total += recency * credibility

    return min(100.0, total / len(news) * 100)


def price_strength(change_24h: Optional[float]) -> float:
    """Map a 24h percent change onto a [0, 1] strength step."""
    if not change_24h:
        return NEUTRAL_PRICE_STRENGTH
    if change_24h > 5:
        return 1.0
    if change_24h > 2:
        return 0.8
    if change_24h > 0:
        return 0.6
    if change_24h > -2:
        return 0.4
    if change_24h > -5:
        return 0.2
    return 0.0


def momentum(analysis: Optional[dict[str, Any]]) -> float:
    if not analysis:
        return NEUTRAL_MOMENTUM

    value = NEUTRAL_MOMENTUM
    trend = analysis.get("trend")
    if trend == "bullish":
        value += 0.3
    elif trend == "bearish":
        value -= 0.3

    # Volatility is read as a momentum hint.
    volatility = analysis.get("volatility")
    if volatility == "high":
        value += 0.1
    elif volatility == "low":
        value -= 0.1

    return max(0.0, min(1.0, value))


# ── Client ─────────────────────────────────────────────────────────


class MarketIntelClient:
    """Fetches price, news, and analysis and folds them into MarketIntelligence."""

    PRICE_PATH = "/api/bitcoin-price"
    NEWS_PATH = "/api/bitcoin-news"
    ANALYSIS_PATH = "/api/market-analysis"

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        timeout: float = 10.0,
        max_attempts: int = 2,
        retry_delay: float = 0.25,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._clock = clock

    async def _get_data(self, client: httpx.AsyncClient, path: str) -> Any:
        async def _call() -> Any:
            resp = await client.get(f"{self.base_url}{path}", timeout=self.timeout)
            resp.raise_for_status()
            return resp.json().get("data")

        return await fetch_retry(
            _call, max_attempts=self.max_attempts, base_delay=self.retry_delay,
            operation=path,
        )

    @property
    def source_budget(self) -> float:
        """Wall-clock bound for one source: every attempt plus the waits between."""
        return self.timeout * self.max_attempts + sum(
            backoff_delays(self.max_attempts, self.retry_delay)
        )

    async def _bounded(self, client: httpx.AsyncClient, path: str) -> Any:
        """One source read, converted to DataUnavailable on any failure."""
        try:
            return await asyncio.wait_for(self._get_data(client, path), self.source_budget)
        except asyncio.TimeoutError as e:
            raise DataUnavailable(f"{path}: timed out after {self.source_budget}s") from e
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            raise DataUnavailable(f"{path}: {e}") from e

    async def fetch(self, client: Optional[httpx.AsyncClient] = None) -> MarketIntelligence:
        """Gather all sources concurrently.

        Raises:
            DataUnavailable: the price source failed (other sources degrade).
        """
        if client is None:
            async with httpx.AsyncClient() as owned:
                return await self.fetch(owned)

        price_res, news_res, analysis_res = await asyncio.gather(
            self._bounded(client, self.PRICE_PATH),
            self._bounded(client, self.NEWS_PATH),
            self._bounded(client, self.ANALYSIS_PATH),
            return_exceptions=True,
        )
        now = self._clock()
        degraded: list[str] = []

        for name, res in (("news", news_res), ("analysis", analysis_res)):
            if isinstance(res, Exception):
                degraded.append(name)
                logger.warning("intel_source_failed", source=name, error=str(res))

        if isinstance(price_res, Exception):
            logger.warning("intel_source_failed", source="price", error=str(price_res))
            raise DataUnavailable(f"price source failed: {price_res}") from price_res

        price, change_24h = self._parse_price(price_res)
        news = news_res if isinstance(news_res, list) else []
        analysis = analysis_res if isinstance(analysis_res, dict) else None

        signal = MarketSignal.create(
            sentiment=analyze_sentiment(news),
            impact_score=impact_score(news, now),
            price_strength=price_strength(change_24h),
            momentum=momentum(analysis),
            observed_at=now,
        )
        logger.info(
            "intel_fetched",
            price=price,
            news_count=len(news),
            market_score=round(signal.market_score, 4),
            degraded=degraded,
        )
        return MarketIntelligence(
            signal=signal,
            price=price,
            fetched_at=now,
            degraded_sources=tuple(degraded),
        )

    @staticmethod
    def _parse_price(payload: Any) -> tuple[float, Optional[float]]:
        if not isinstance(payload, dict):
            raise DataUnavailable(f"price payload malformed: {payload!r}")
        try:
            price = float(payload["price"])
        except (KeyError, TypeError, ValueError):
            raise DataUnavailable(f"price payload malformed: {payload!r}") from None
        if price <= 0:
            raise DataUnavailable(f"non-positive price {price}")
        change = payload.get("change24h")
        try:
            change_24h = float(change) if change is not None else None
        except (TypeError, ValueError):
            change_24h = None
        return price, change_24h
