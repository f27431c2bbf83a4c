# src/decision/engine.py
"""Turns goal pacing, market intelligence, and balances into one Decision."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from src.agency.state import AgentState
from src.decision.models import Action, Decision, PaceState, ScoreBucket
from src.decision.table import Rule, lookup
from src.goals.pacer import GoalProgress
from src.intel.signal import MarketIntelligence, MarketSignal
from src.ledger.models import PortfolioSnapshot

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ScoreBuckets:
    poor_below: float = 0.3
    weak_max: float = 0.4
    moderate_max: float = 0.6
    strong_max: float = 0.7

    def classify(self, score: float) -> ScoreBucket:
        if score < self.poor_below:
            return ScoreBucket.POOR
        if score <= self.weak_max:
            return ScoreBucket.WEAK
        if score <= self.moderate_max:
            return ScoreBucket.MODERATE
        if score <= self.strong_max:
            return ScoreBucket.STRONG
        return ScoreBucket.EXCELLENT


@dataclass(frozen=True, slots=True)
class DecisionConfig:
    max_position_fraction: float = 0.5
    min_cash_reserve_fraction: float = 0.0
    minimum_trade_notional: float = 25.0
    buckets: ScoreBuckets = ScoreBuckets()

    @classmethod
    def from_settings(cls, s: Any) -> "DecisionConfig":
        return cls(
            max_position_fraction=s.MAX_POSITION_FRACTION,
            min_cash_reserve_fraction=s.MIN_CASH_RESERVE_FRACTION,
            minimum_trade_notional=s.MINIMUM_TRADE_NOTIONAL,
            buckets=ScoreBuckets(
                poor_below=s.SCORE_POOR_BELOW,
                weak_max=s.SCORE_WEAK_MAX,
                moderate_max=s.SCORE_MODERATE_MAX,
                strong_max=s.SCORE_STRONG_MAX,
            ),
        )


def pace_state(progress: GoalProgress) -> PaceState:
    if not progress.is_on_track:
        return PaceState.BEHIND
    if progress.target_achieved:
        return PaceState.TARGET_MET
    return PaceState.ON_TRACK


def market_basis(signal: MarketSignal, score: float) -> str:
    return " | ".join([
        f"Market Score: {score * 100:.1f}%",
        f"Sentiment: {signal.sentiment:.2f}",
        f"Impact: {signal.impact_score:.0f}/100",
        f"Price Strength: {signal.price_strength * 100:.1f}%",
        f"Momentum: {signal.momentum * 100:.1f}%",
    ])


class DecisionEngine:
    """Stateless per call: the same inputs always give the same Decision."""

    def __init__(self, config: Optional[DecisionConfig] = None) -> None:
        self.config = config or DecisionConfig()

    def decide(
        self,
        progress: GoalProgress,
        intel: MarketIntelligence,
        snapshot: PortfolioSnapshot,
        agent_state: Optional[AgentState] = None,
        now: Optional[float] = None,
    ) -> Decision:
        cfg = self.config
        now = time.time() if now is None else now
        price = intel.price
        score = intel.signal.market_score
        bucket = cfg.buckets.classify(score)
        pace = pace_state(progress)
        rule = lookup(pace, progress.urgency, bucket)
        autonomy = agent_state.autonomy_level if agent_state is not None else 1.0

        context = (
            f"pace={pace.value} urgency={progress.urgency.value} "
            f"| market_score={score:.3f} ({bucket.value})"
        )
        basis = market_basis(intel.signal, score)

        def emit(action: Action, quantity: float, summary: str, rule_name: str) -> Decision:
            return Decision(
                action=action,
                quantity=quantity,
                price=price,
                confidence=rule.confidence,
                reasoning=f"{action.value}: {summary} | {context} | rule={rule_name}",
                urgency=progress.urgency,
                market_basis=basis,
                rule=rule_name,
                timestamp=now,
            )

        if rule.action is Action.HOLD:
            return emit(Action.HOLD, 0.0, rule.summary, rule.name)

        if price <= 0:
            return emit(Action.HOLD, 0.0, f"no usable price ({price})", "no_price")

        quantity = self._size(rule, snapshot, price, autonomy)
        notional = quantity * price
        if notional < cfg.minimum_trade_notional or quantity <= 0:
            return emit(
                Action.HOLD,
                0.0,
                (
                    f"{rule.action.value} notional {notional:.2f} below minimum "
                    f"{cfg.minimum_trade_notional:.2f}, suppressed {rule.name}"
                ),
                "min_notional",
            )

        return emit(rule.action, quantity, rule.summary, rule.name)

    def _size(
        self,
        rule: Rule,
        snapshot: PortfolioSnapshot,
        price: float,
        autonomy: float,
    ) -> float:
        cfg = self.config
        fraction = min(rule.sizing_fraction * autonomy, cfg.max_position_fraction)
        fraction = max(fraction, 0.0)

        if rule.action is Action.BUY:
            reserve = cfg.min_cash_reserve_fraction * snapshot.total_value
            available = max(0.0, snapshot.quote_balance - reserve)
            notional = fraction * available
            if rule.max_notional is not None:
                notional = min(notional, rule.max_notional)
            return notional / price

        return fraction * max(snapshot.base_balance, 0.0)
