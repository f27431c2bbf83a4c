# src/agency/state.py
"""Versioned agent state injected into the decision cycle.

Autonomy and performance used to live in ambient mutable maps. Here they are a
frozen record behind a store with an optimistic-concurrency contract: every
update names the version it was based on, and a mismatch is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

import structlog

from src.exceptions import ConcurrencyViolation, ValidationError

logger = structlog.get_logger()

_MUTABLE_FIELDS = {"autonomy_level", "performance_score", "decisions_made", "trades_executed"}


@dataclass(frozen=True, slots=True)
class AgentState:
    version: int = 0
    autonomy_level: float = 1.0  # scales rule sizing, 0..1
    performance_score: float = 0.0  # rolling win rate, 0..1
    decisions_made: int = 0
    trades_executed: int = 0

    def __post_init__(self) -> None:
        if not 0.0 <= self.autonomy_level <= 1.0:
            raise ValidationError(f"autonomy_level must be within [0, 1], got {self.autonomy_level}")
        if not 0.0 <= self.performance_score <= 1.0:
            raise ValidationError(
                f"performance_score must be within [0, 1], got {self.performance_score}"
            )
        if self.decisions_made < 0 or self.trades_executed < 0:
            raise ValidationError("counters must not be negative")


class AgentStateStore:
    def __init__(self, initial: AgentState | None = None) -> None:
        self._state = initial or AgentState()

    def read(self) -> AgentState:
        return self._state

    def update(self, expected_version: int, **changes: Any) -> AgentState:
        """Apply ``changes`` if the stored version still equals ``expected_version``.

        Raises:
            ConcurrencyViolation: the state moved on since it was read.
            ValidationError: unknown field or out-of-range value.
        """
        current = self._state
        if current.version != expected_version:
            raise ConcurrencyViolation(
                f"agent state version {current.version}, update based on {expected_version}"
            )
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"cannot update agent state fields: {sorted(unknown)}")
        new_state = replace(current, version=current.version + 1, **changes)
        self._state = new_state
        return new_state

    def record_cycle(self, *, executed: bool, win_rate: float) -> AgentState:
        current = self._state
        new_state = self.update(
            current.version,
            decisions_made=current.decisions_made + 1,
            trades_executed=current.trades_executed + (1 if executed else 0),
            performance_score=min(max(win_rate, 0.0), 1.0),
        )
        logger.debug(
            "agent_state_updated",
            version=new_state.version,
            decisions_made=new_state.decisions_made,
            trades_executed=new_state.trades_executed,
        )
        return new_state
