# src/trading/cycle.py
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from src.agency.state import AgentStateStore
from src.analytics.metrics import PerformanceReport, win_rate
from src.audit.decision_log import DecisionAuditRecord, DecisionSink, LoggingDecisionSink
from src.decision.engine import DecisionEngine
from src.decision.models import Decision
from src.exceptions import (
    ConcurrencyViolation,
    DataUnavailable,
    ExecutionRejected,
    InsufficientInventory,
)
from src.goals.pacer import GoalPacer, GoalProgress
from src.intel.cache import MarketIntelligenceCache
from src.ledger.position_ledger import CommitResult, PositionLedger

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CycleResult:
    decision: Decision
    progress: GoalProgress
    executed: bool
    commit: Optional[CommitResult] = None
    rejection: Optional[str] = None


class TradingCycle:
    """Orchestrator: wires components and runs the decision loop, no business logic."""

    def __init__(
        self,
        *,
        ledger: PositionLedger,
        pacer: GoalPacer,
        intel_cache: MarketIntelligenceCache,
        engine: DecisionEngine,
        agent_store: Optional[AgentStateStore] = None,
        sink: Optional[DecisionSink] = None,
        interval_seconds: float = 60.0,
        fee_rate: float = 0.0,
        risk_free_rate: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.pacer = pacer
        self.intel_cache = intel_cache
        self.engine = engine
        self.agent_store = agent_store or AgentStateStore()
        self.sink = sink or LoggingDecisionSink()
        self.interval_seconds = interval_seconds
        self.fee_rate = fee_rate
        self.risk_free_rate = risk_free_rate
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self.cycles_run = 0
        self.cycles_skipped = 0

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info("trading_loop_started", interval=self.interval_seconds)
        while not stop_event.is_set():
            try:
                await self.run_once()
            except (ConcurrencyViolation, DataUnavailable) as exc:
                self.cycles_skipped += 1
                logger.warning("cycle_skipped", reason=type(exc).__name__, error=str(exc))
            except Exception as exc:
                self.cycles_skipped += 1
                logger.error("cycle_error", error=str(exc))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("trading_loop_stopped", cycles_run=self.cycles_run)

    async def run_once(self, now: Optional[float] = None) -> CycleResult:
        """Run one full decision cycle.

        Raises:
            ConcurrencyViolation: another cycle is still in flight.
            DataUnavailable: no market price could be obtained.
        """
        if self._cycle_lock.locked():
            raise ConcurrencyViolation("a decision cycle is already running")
        async with self._cycle_lock:
            return await self._cycle(now)

    async def _cycle(self, now: Optional[float]) -> CycleResult:
        intel = await self.intel_cache.get()
        now = self._clock() if now is None else now

        # 1. Value the portfolio at the current price
        valuation = self.ledger.snapshot_at(intel.price, now)

        # 2. Goal pacing; a rollover is stored with this cycle's ledger commit
        previous_goal = self.pacer.state
        progress = self.pacer.evaluate(now, valuation.total_value)
        rolled_goal = self.pacer.state if progress.rolled_over else None

        # 3. Decide
        agent_state = self.agent_store.read()
        decision = self.engine.decide(progress, intel, valuation, agent_state, now=now)

        # 4. Commit: the trade with its snapshot, or a plain mark
        executed = False
        commit: Optional[CommitResult] = None
        rejection: Optional[str] = None
        emitted = decision
        try:
            if decision.is_trade:
                try:
                    commit = await self.ledger.apply_decision(
                        decision, fee_rate=self.fee_rate, now=now, goal_state=rolled_goal,
                    )
                    executed = True
                except (ExecutionRejected, InsufficientInventory) as exc:
                    rejection = type(exc).__name__
                    emitted = decision.downgraded(rejection)
                    logger.warning(
                        "decision_downgraded",
                        action=decision.action.value,
                        quantity=decision.quantity,
                        reason=rejection,
                        detail=str(exc),
                    )
            if not executed:
                await self.ledger.mark(intel.price, now, goal_state=rolled_goal)
        except Exception:
            self.pacer.restore(previous_goal)
            raise

        # 5. Feedback into agent state
        self.agent_store.record_cycle(
            executed=executed,
            win_rate=win_rate(self.ledger.lot_book.pairs),
        )

        # 6. Audit
        await self.sink.emit(
            DecisionAuditRecord.from_decision(emitted, executed=executed, rejection=rejection)
        )
        self.cycles_run += 1
        return CycleResult(
            decision=emitted,
            progress=progress,
            executed=executed,
            commit=commit,
            rejection=rejection,
        )

    def report(self, mark_price: float) -> PerformanceReport:
        """Performance over committed data; safe to call while a cycle runs."""
        view = self.ledger.view()
        return PerformanceReport.build(
            pairs=view.pairs,
            open_lots=view.open_lots,
            snapshots=view.snapshots,
            mark_price=mark_price,
            risk_free_rate=self.risk_free_rate,
        )
