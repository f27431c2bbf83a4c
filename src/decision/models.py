# src/decision/models.py
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from src.goals.pacer import Urgency


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PaceState(str, Enum):
    BEHIND = "BEHIND"
    ON_TRACK = "ON_TRACK"
    TARGET_MET = "TARGET_MET"


class ScoreBucket(str, Enum):
    POOR = "POOR"
    WEAK = "WEAK"
    MODERATE = "MODERATE"
    STRONG = "STRONG"
    EXCELLENT = "EXCELLENT"


@dataclass(frozen=True, slots=True)
class Decision:
    action: Action
    quantity: float
    price: float
    confidence: float  # 0..100
    reasoning: str
    urgency: Urgency
    market_basis: str
    rule: str
    timestamp: float

    @property
    def notional(self) -> float:
        return self.quantity * self.price

    @property
    def is_trade(self) -> bool:
        return self.action is not Action.HOLD

    def downgraded(self, cause: str) -> "Decision":
        """Unexecuted HOLD copy of this decision, for audit after a rejection."""
        return replace(
            self,
            action=Action.HOLD,
            quantity=0.0,
            reasoning=(
                f"HOLD: {self.action.value} {self.quantity:.8f} rejected ({cause}) "
                f"| was: {self.reasoning}"
            ),
            rule=f"rejected:{cause}",
        )
