# src/intel/signal.py
"""Normalized market-intelligence signal and its cached envelope."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any

from src.exceptions import ValidationError

# Neutral factor defaults, each normalizing to 0.5.
NEUTRAL_SENTIMENT = 0.0
NEUTRAL_IMPACT = 50.0
NEUTRAL_PRICE_STRENGTH = 0.5
NEUTRAL_MOMENTUM = 0.5


def _bounded(name: str, value: Any, low: float, high: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(value) or not low <= value <= high:
        raise ValidationError(f"{name} must be within [{low}, {high}], got {value}")
    return value


@dataclass(frozen=True, slots=True)
class MarketSignal:
    sentiment: float  # [-1, 1]
    impact_score: float  # [0, 100]
    price_strength: float  # [0, 1]
    momentum: float  # [0, 1]
    observed_at: float

    @classmethod
    def create(
        cls,
        *,
        sentiment: float,
        impact_score: float,
        price_strength: float,
        momentum: float,
        observed_at: float,
    ) -> "MarketSignal":
        return cls(
            sentiment=_bounded("sentiment", sentiment, -1.0, 1.0),
            impact_score=_bounded("impact_score", impact_score, 0.0, 100.0),
            price_strength=_bounded("price_strength", price_strength, 0.0, 1.0),
            momentum=_bounded("momentum", momentum, 0.0, 1.0),
            observed_at=float(observed_at),
        )

    @classmethod
    def neutral(cls, observed_at: float = 0.0) -> "MarketSignal":
        return cls(
            sentiment=NEUTRAL_SENTIMENT,
            impact_score=NEUTRAL_IMPACT,
            price_strength=NEUTRAL_PRICE_STRENGTH,
            momentum=NEUTRAL_MOMENTUM,
            observed_at=observed_at,
        )

    def normalized_factors(self) -> tuple[float, float, float, float]:
        """Each factor mapped to [0, 1]."""
        return (
            (self.sentiment + 1) / 2,
            self.impact_score / 100,
            self.price_strength,
            self.momentum,
        )

    @property
    def market_score(self) -> float:
        factors = self.normalized_factors()
        return sum(factors) / len(factors)


NEUTRAL_SIGNAL = MarketSignal.neutral()


@dataclass(frozen=True, slots=True)
class MarketIntelligence:
    """What the decision cycle consumes: a signal plus the price it applies to."""

    signal: MarketSignal
    price: float
    fetched_at: float
    degraded_sources: tuple[str, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_sources)

    def as_fallback(self, source: str = "cache") -> "MarketIntelligence":
        """Same values, flagged as served after a failed refresh."""
        if source in self.degraded_sources:
            return self
        return replace(self, degraded_sources=self.degraded_sources + (source,))
