# src/intel/cache.py
"""TTL cache holding the latest MarketIntelligence.

Reads within the TTL return the cached value. A stale read starts exactly one
refresh; readers arriving while it runs get the previous value instead of
waiting. A failed refresh falls back to the last good value, or to the neutral
signal at the last known price.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional

import structlog

from src.exceptions import DataUnavailable
from src.intel.signal import MarketIntelligence, MarketSignal

logger = structlog.get_logger()

Fetcher = Callable[[], Awaitable[MarketIntelligence]]


class MarketIntelligenceCache:
    def __init__(
        self,
        fetch: Fetcher,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[MarketIntelligence] = None
        self._stored_at: float = 0.0
        self._last_price: Optional[float] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self.refresh_count = 0
        self.failure_count = 0

    @property
    def value(self) -> Optional[MarketIntelligence]:
        return self._value

    def is_fresh(self) -> bool:
        return (
            self._value is not None
            and self._clock() - self._stored_at < self.ttl_seconds
        )

    def seed_price(self, price: float) -> None:
        """Last known price to pair with the neutral signal before any fetch succeeds."""
        if price > 0:
            self._last_price = price

    def invalidate(self) -> None:
        self._stored_at = float("-inf")

    async def get(self) -> MarketIntelligence:
        """Return cached intelligence, refreshing it if the TTL expired.

        Raises:
            DataUnavailable: no price has ever been observed and the refresh failed.
        """
        if self.is_fresh():
            return self._value

        if self._refresh_task is not None and not self._refresh_task.done():
            if self._value is not None:
                logger.debug("intel_cache_serving_previous")
                return self._value
            return await asyncio.shield(self._refresh_task)

        self._refresh_task = asyncio.create_task(self._refresh())
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> MarketIntelligence:
        self.refresh_count += 1
        try:
            intel = await self._fetch()
        except Exception as exc:
            self.failure_count += 1
            return self._fallback(exc)

        self._value = intel
        self._stored_at = self._clock()
        self._last_price = intel.price
        return intel

    def _fallback(self, exc: Exception) -> MarketIntelligence:
        if self._value is not None:
            logger.warning(
                "intel_refresh_failed",
                error=str(exc),
                fallback="last_good",
            )
            self._value = self._value.as_fallback()
            # Stay stale so the next read retries the refresh.
            return self._value

        if self._last_price is None:
            logger.error("intel_refresh_failed", error=str(exc), fallback="none")
            if isinstance(exc, DataUnavailable):
                raise exc
            raise DataUnavailable(f"market intelligence unavailable: {exc}") from exc

        logger.warning(
            "intel_refresh_failed",
            error=str(exc),
            fallback="neutral",
            price=self._last_price,
        )
        now = time.time()
        return MarketIntelligence(
            signal=MarketSignal.neutral(observed_at=now),
            price=self._last_price,
            fetched_at=now,
            degraded_sources=("price", "news", "analysis"),
        )
