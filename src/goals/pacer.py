# src/goals/pacer.py
"""Weekly return goal with time-proportional pacing and urgency."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from src.exceptions import ValidationError

logger = structlog.get_logger()

DAY_SECONDS = 24 * 60 * 60
WEEK_DAYS = 7
WEEK_SECONDS = WEEK_DAYS * DAY_SECONDS


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True, slots=True)
class UrgencyThresholds:
    high_days: float = 2.0
    medium_days: float = 4.0

    def classify(self, days_remaining: float, is_on_track: bool) -> Urgency:
        if days_remaining <= self.high_days and not is_on_track:
            return Urgency.HIGH
        if days_remaining <= self.medium_days:
            return Urgency.MEDIUM
        return Urgency.LOW


@dataclass(frozen=True, slots=True)
class GoalState:
    starting_value: float
    weekly_target_return: float
    week_start_timestamp: float

    def __post_init__(self) -> None:
        if self.starting_value <= 0:
            raise ValidationError(
                f"starting_value must be positive, got {self.starting_value}"
            )

    def rolled_over(self, now: float, current_value: float) -> "GoalState":
        return GoalState(
            starting_value=current_value,
            weekly_target_return=self.weekly_target_return,
            week_start_timestamp=now,
        )


@dataclass(frozen=True, slots=True)
class GoalProgress:
    timestamp: float
    starting_value: float
    current_value: float
    weekly_target_return: float
    actual_return: float
    expected_return: float
    expected_value: float
    target_value: float
    time_progress: float  # 0..1 share of the week elapsed
    days_remaining: float
    is_on_track: bool
    target_achieved: bool
    urgency: Urgency
    progress_ratio: float
    remaining_return: float
    daily_target_remaining: float
    rolled_over: bool = False


def expected_return(state: GoalState, now: float) -> float:
    """Return the share of the weekly target that should be earned by ``now``."""
    elapsed = now - state.week_start_timestamp
    time_progress = min(max(elapsed / WEEK_SECONDS, 0.0), 1.0)
    return state.weekly_target_return * time_progress


class GoalPacer:
    """Holds the current GoalState and evaluates progress against it.

    The state changes only through rollover, which happens on the first
    evaluation at or after seven days from the week start. Trades never
    touch it directly.
    """

    def __init__(
        self,
        state: GoalState,
        thresholds: Optional[UrgencyThresholds] = None,
    ) -> None:
        self._state = state
        self.thresholds = thresholds or UrgencyThresholds()

    @classmethod
    def start(
        cls,
        *,
        starting_value: float,
        weekly_target_return: float,
        now: float,
        thresholds: Optional[UrgencyThresholds] = None,
    ) -> "GoalPacer":
        state = GoalState(
            starting_value=starting_value,
            weekly_target_return=weekly_target_return,
            week_start_timestamp=now,
        )
        return cls(state, thresholds)

    @property
    def state(self) -> GoalState:
        return self._state

    def restore(self, state: GoalState) -> None:
        """Put back a state whose rollover could not be persisted."""
        self._state = state

    def evaluate(self, now: float, current_value: float) -> GoalProgress:
        state = self._state
        rolled = False
        if now - state.week_start_timestamp >= WEEK_SECONDS:
            previous = state
            state = state.rolled_over(now, current_value)
            self._state = state
            rolled = True
            logger.info(
                "goal_week_rolled_over",
                previous_start=previous.week_start_timestamp,
                previous_starting_value=previous.starting_value,
                starting_value=state.starting_value,
            )

        elapsed = max(now - state.week_start_timestamp, 0.0)
        days_remaining = max(0.0, WEEK_DAYS - elapsed / DAY_SECONDS)
        if days_remaining <= 0:
            time_progress = 1.0
        else:
            time_progress = min(elapsed / WEEK_SECONDS, 1.0)

        target = state.weekly_target_return
        expected = target * time_progress
        actual = (current_value - state.starting_value) / state.starting_value
        on_track = actual >= expected
        remaining_return = target - actual

        return GoalProgress(
            timestamp=now,
            starting_value=state.starting_value,
            current_value=current_value,
            weekly_target_return=target,
            actual_return=actual,
            expected_return=expected,
            expected_value=state.starting_value * (1 + expected),
            target_value=state.starting_value * (1 + target),
            time_progress=time_progress,
            days_remaining=days_remaining,
            is_on_track=on_track,
            target_achieved=actual >= target,
            urgency=self.thresholds.classify(days_remaining, on_track),
            progress_ratio=actual / expected if expected > 0 else 0.0,
            remaining_return=remaining_return,
            daily_target_remaining=remaining_return / max(1.0, days_remaining),
            rolled_over=rolled,
        )
