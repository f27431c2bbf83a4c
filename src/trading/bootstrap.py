# src/trading/bootstrap.py
"""Builds a TradingCycle from Settings."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import structlog

from config.validators import validate_intel_endpoint, validate_trading_settings
from src.agency.state import AgentState, AgentStateStore
from src.audit.decision_log import DecisionSink, LoggingDecisionSink
from src.decision.engine import DecisionConfig, DecisionEngine
from src.goals.pacer import GoalPacer, UrgencyThresholds
from src.intel.cache import Fetcher, MarketIntelligenceCache
from src.intel.sources import MarketIntelClient
from src.ledger.position_ledger import InMemoryLedgerStore, LedgerStore, PositionLedger
from src.trading.cycle import TradingCycle

logger = structlog.get_logger()


async def build_trading_cycle(
    s: Any,
    *,
    store: Optional[LedgerStore] = None,
    fetch: Optional[Fetcher] = None,
    sink: Optional[DecisionSink] = None,
    clock: Callable[[], float] = time.time,
) -> TradingCycle:
    """Validate settings, restore persisted state, and wire the components.

    A fresh store starts with ``STARTING_VALUE`` in quote and no base; a store
    that already holds a goal keeps its week.
    """
    validate_trading_settings(s)
    validate_intel_endpoint(s)

    store = store or InMemoryLedgerStore()
    ledger = await PositionLedger.restore(
        store,
        initial_quote=s.STARTING_VALUE,
        snapshot_history=s.SNAPSHOT_HISTORY,
        clock=clock,
    )

    thresholds = UrgencyThresholds(
        high_days=s.URGENCY_HIGH_DAYS,
        medium_days=s.URGENCY_MEDIUM_DAYS,
    )
    goal_state = await store.load_goal_state()
    if goal_state is not None:
        pacer = GoalPacer(goal_state, thresholds)
    else:
        pacer = GoalPacer.start(
            starting_value=s.STARTING_VALUE,
            weekly_target_return=s.WEEKLY_TARGET_RETURN,
            now=clock(),
            thresholds=thresholds,
        )
        await store.save_goal_state(pacer.state)

    if fetch is None:
        fetch = MarketIntelClient(
            base_url=s.INTEL_BASE_URL,
            timeout=s.INTEL_TIMEOUT_SECONDS,
            clock=clock,
        ).fetch
    cache = MarketIntelligenceCache(fetch, ttl_seconds=s.CACHE_TTL_MS / 1000)
    if ledger.snapshots:
        cache.seed_price(ledger.snapshots[-1].price)

    logger.info(
        "trading_cycle_built",
        quote_balance=ledger.quote_balance,
        base_balance=ledger.base_balance,
        week_start=pacer.state.week_start_timestamp,
        starting_value=pacer.state.starting_value,
    )
    return TradingCycle(
        ledger=ledger,
        pacer=pacer,
        intel_cache=cache,
        engine=DecisionEngine(DecisionConfig.from_settings(s)),
        agent_store=AgentStateStore(AgentState(autonomy_level=s.AUTONOMY_LEVEL)),
        sink=sink or LoggingDecisionSink(),
        interval_seconds=s.DECISION_INTERVAL_MS / 1000,
        fee_rate=s.TRADE_FEE_RATE,
        risk_free_rate=s.RISK_FREE_RATE,
        clock=clock,
    )
