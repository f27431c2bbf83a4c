# src/decision/table.py
"""Decision table keyed by (pace state, urgency, market score bucket).

Rows are declared compactly and expanded into a flat dict so every lookup is
one deterministic key. A key that no row covers resolves to ``DEFAULT_HOLD``.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import product
from typing import Iterable, Optional

from src.decision.models import Action, PaceState, ScoreBucket
from src.goals.pacer import Urgency

ALL_URGENCIES = tuple(Urgency)
ALL_BUCKETS = tuple(ScoreBucket)
ABOVE_MODERATE = (ScoreBucket.STRONG, ScoreBucket.EXCELLENT)


@dataclass(frozen=True, slots=True)
class Rule:
    name: str
    action: Action
    confidence: float
    summary: str
    sizing_fraction: float = 0.0  # of available quote (BUY) or base (SELL)
    max_notional: Optional[float] = None  # quote cap per trade


@dataclass(frozen=True, slots=True)
class _Row:
    pace: PaceState
    urgencies: tuple[Urgency, ...]
    buckets: tuple[ScoreBucket, ...]
    rule: Rule


DEFAULT_HOLD = Rule(
    name="default_hold",
    action=Action.HOLD,
    confidence=60,
    summary="no rule matched, holding",
)


def _behind(urgency: Urgency, buckets: Iterable[ScoreBucket], rule: Rule) -> _Row:
    return _Row(PaceState.BEHIND, (urgency,), tuple(buckets), rule)


_ROWS: tuple[_Row, ...] = (
    # Behind target, little time left: lean in if the market allows it.
    _behind(Urgency.HIGH, ABOVE_MODERATE, Rule(
        "behind_high_strong", Action.BUY, 90,
        "behind target with strong market signals",
        sizing_fraction=0.5, max_notional=4000,
    )),
    _behind(Urgency.HIGH, (ScoreBucket.MODERATE,), Rule(
        "behind_high_moderate", Action.BUY, 75,
        "behind target with moderate market signals, calculated risk",
        sizing_fraction=0.3, max_notional=2500,
    )),
    _behind(Urgency.HIGH, (ScoreBucket.POOR, ScoreBucket.WEAK), Rule(
        "behind_high_weak", Action.HOLD, 80,
        "behind target but poor market conditions, waiting for a better entry",
    )),
    _behind(Urgency.MEDIUM, ABOVE_MODERATE, Rule(
        "behind_medium_strong", Action.BUY, 85,
        "behind target, strong market momentum supports a position",
        sizing_fraction=0.3, max_notional=2000,
    )),
    _behind(Urgency.MEDIUM, (ScoreBucket.MODERATE,), Rule(
        "behind_medium_moderate", Action.BUY, 70,
        "behind target with moderate market signals",
        sizing_fraction=0.2, max_notional=1500,
    )),
    _behind(Urgency.MEDIUM, (ScoreBucket.POOR, ScoreBucket.WEAK), Rule(
        "behind_medium_weak", Action.HOLD, 70,
        "behind target but weak market signals",
    )),
    _behind(Urgency.LOW, (ScoreBucket.EXCELLENT,), Rule(
        "behind_low_excellent", Action.BUY, 80,
        "strong market signals override a minor target lag",
        sizing_fraction=0.2, max_notional=1000,
    )),
    _behind(Urgency.LOW, ALL_BUCKETS[:-1], Rule(
        "behind_low_wait", Action.HOLD, 75,
        "slightly behind target, waiting for stronger market signals",
    )),
    # Weekly target already reached: only take profit into weakness.
    _Row(PaceState.TARGET_MET, ALL_URGENCIES, (ScoreBucket.POOR,), Rule(
        "target_met_poor", Action.SELL, 90,
        "target achieved, poor market signals suggest profit-taking",
        sizing_fraction=0.3,
    )),
    _Row(PaceState.TARGET_MET, ALL_URGENCIES, ALL_BUCKETS[1:], Rule(
        "target_met_hold", Action.HOLD, 85,
        "target achieved, maintaining position in decent market conditions",
    )),
    # On pace: trade only at the extremes.
    _Row(PaceState.ON_TRACK, ALL_URGENCIES, (ScoreBucket.EXCELLENT,), Rule(
        "on_track_excellent", Action.BUY, 85,
        "on track with excellent market signals, capitalizing on momentum",
        sizing_fraction=0.2, max_notional=1200,
    )),
    _Row(PaceState.ON_TRACK, ALL_URGENCIES, (ScoreBucket.POOR,), Rule(
        "on_track_poor", Action.SELL, 80,
        "poor market signals, reducing exposure",
        sizing_fraction=0.2,
    )),
    _Row(
        PaceState.ON_TRACK,
        ALL_URGENCIES,
        (ScoreBucket.WEAK, ScoreBucket.MODERATE, ScoreBucket.STRONG),
        Rule(
            "on_track_neutral", Action.HOLD, 75,
            "on track with neutral market signals, maintaining position",
        ),
    ),
)


def build_table(
    rows: Iterable[_Row] = _ROWS,
) -> dict[tuple[PaceState, Urgency, ScoreBucket], Rule]:
    table: dict[tuple[PaceState, Urgency, ScoreBucket], Rule] = {}
    for row in rows:
        for urgency, bucket in product(row.urgencies, row.buckets):
            key = (row.pace, urgency, bucket)
            if key in table:
                raise ValueError(f"decision table key {key} declared twice")
            table[key] = row.rule
    return table


DECISION_TABLE = build_table()


def lookup(pace: PaceState, urgency: Urgency, bucket: ScoreBucket) -> Rule:
    return DECISION_TABLE.get((pace, urgency, bucket), DEFAULT_HOLD)
