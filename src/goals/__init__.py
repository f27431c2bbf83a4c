"""Weekly return goal pacing."""

from .pacer import GoalPacer, GoalProgress, GoalState, Urgency, UrgencyThresholds

__all__ = [
    "GoalPacer",
    "GoalProgress",
    "GoalState",
    "Urgency",
    "UrgencyThresholds",
]
