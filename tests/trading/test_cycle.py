"""Tests for the trading cycle orchestrator."""

import asyncio
from unittest.mock import MagicMock

import pytest

from src.agency.state import AgentStateStore
from src.decision.engine import DecisionEngine
from src.decision.models import Action, Decision
from src.exceptions import ConcurrencyViolation, DataUnavailable, PersistenceError
from src.goals.pacer import DAY_SECONDS, WEEK_SECONDS, GoalPacer, Urgency
from src.intel.cache import MarketIntelligenceCache
from src.intel.signal import MarketIntelligence, MarketSignal
from src.ledger.position_ledger import InMemoryLedgerStore, PositionLedger
from src.trading.cycle import TradingCycle

T0 = 1_700_000_000.0
MID_WEEK = T0 + 3.5 * DAY_SECONDS


class RecordingSink:
    def __init__(self) -> None:
        self.records = []

    async def emit(self, record) -> None:
        self.records.append(record)


def make_intel(score: float, price: float = 100.0) -> MarketIntelligence:
    signal = MarketSignal.create(
        sentiment=2 * score - 1,
        impact_score=100 * score,
        price_strength=score,
        momentum=score,
        observed_at=T0,
    )
    return MarketIntelligence(signal=signal, price=price, fetched_at=T0)


def make_cycle(fetch, *, engine=None, store=None, sink=None, **kwargs) -> TradingCycle:
    store = store or InMemoryLedgerStore()
    return TradingCycle(
        ledger=PositionLedger(quote_balance=10_000.0, store=store),
        pacer=GoalPacer.start(starting_value=10_000.0, weekly_target_return=0.05, now=T0),
        intel_cache=MarketIntelligenceCache(fetch, ttl_seconds=300),
        engine=engine or DecisionEngine(),
        agent_store=AgentStateStore(),
        sink=sink or RecordingSink(),
        **kwargs,
    )


def fixed(intel: MarketIntelligence):
    async def fetch() -> MarketIntelligence:
        return intel
    return fetch


@pytest.mark.asyncio
async def test_hold_cycle_marks_portfolio_and_audits():
    sink = RecordingSink()
    cycle = make_cycle(fixed(make_intel(0.35)), sink=sink)

    result = await cycle.run_once(now=MID_WEEK)

    assert result.decision.action is Action.HOLD
    assert result.decision.rule == "behind_medium_weak"
    assert result.executed is False
    assert result.progress.urgency is Urgency.MEDIUM
    assert len(cycle.ledger.snapshots) == 1
    assert cycle.ledger.executions == ()
    assert len(sink.records) == 1
    assert sink.records[0].action == "HOLD"
    assert sink.records[0].executed is False
    assert cycle.agent_store.read().decisions_made == 1


@pytest.mark.asyncio
async def test_buy_cycle_commits_execution():
    sink = RecordingSink()
    store = InMemoryLedgerStore()
    cycle = make_cycle(fixed(make_intel(0.65)), sink=sink, store=store, fee_rate=0.001)

    result = await cycle.run_once(now=MID_WEEK)

    assert result.decision.action is Action.BUY
    assert result.decision.rule == "behind_medium_strong"
    assert result.executed is True
    # 0.3 of 10000 capped at 2000
    assert cycle.ledger.base_balance == pytest.approx(20.0)
    assert cycle.ledger.quote_balance == pytest.approx(10_000.0 - 2000.0 - 2.0)
    assert result.commit.execution.fee == pytest.approx(2.0)
    assert len(store.executions) == 1
    assert len(store.snapshots) == 1
    assert store.snapshots[0] == result.commit.snapshot
    assert sink.records[0].executed is True
    assert sink.records[0].market_basis.startswith("Market Score: 65.0%")
    assert cycle.agent_store.read().trades_executed == 1


@pytest.mark.asyncio
async def test_rejected_decision_downgraded_to_hold():
    engine = MagicMock()
    engine.decide.return_value = Decision(
        action=Action.BUY,
        quantity=1000.0,
        price=100.0,
        confidence=90,
        reasoning="BUY: oversized",
        urgency=Urgency.HIGH,
        market_basis="",
        rule="behind_high_strong",
        timestamp=MID_WEEK,
    )
    sink = RecordingSink()
    cycle = make_cycle(fixed(make_intel(0.65)), engine=engine, sink=sink)

    result = await cycle.run_once(now=MID_WEEK)

    assert result.executed is False
    assert result.rejection == "InsufficientFunds"
    assert result.decision.action is Action.HOLD
    assert result.decision.rule == "rejected:InsufficientFunds"
    assert cycle.ledger.quote_balance == 10_000.0
    assert cycle.ledger.executions == ()
    assert sink.records[0].rejection == "InsufficientFunds"
    assert "rejected (InsufficientFunds)" in sink.records[0].reasoning


@pytest.mark.asyncio
async def test_overlapping_cycle_rejected():
    release = asyncio.Event()

    async def slow_fetch() -> MarketIntelligence:
        await release.wait()
        return make_intel(0.35)

    cycle = make_cycle(slow_fetch)
    first = asyncio.create_task(cycle.run_once(now=MID_WEEK))
    await asyncio.sleep(0)

    with pytest.raises(ConcurrencyViolation):
        await cycle.run_once(now=MID_WEEK)

    release.set()
    result = await first
    assert result.decision.action is Action.HOLD
    assert len(cycle.ledger.snapshots) == 1


@pytest.mark.asyncio
async def test_no_price_skips_cycle():
    async def down() -> MarketIntelligence:
        raise DataUnavailable("price source failed")

    cycle = make_cycle(down)

    with pytest.raises(DataUnavailable):
        await cycle.run_once(now=MID_WEEK)
    assert cycle.ledger.snapshots == ()


@pytest.mark.asyncio
async def test_rollover_persists_goal_state():
    store = InMemoryLedgerStore()
    cycle = make_cycle(fixed(make_intel(0.5)), store=store)

    result = await cycle.run_once(now=T0 + WEEK_SECONDS)

    assert result.progress.rolled_over is True
    assert store.goal_state == cycle.pacer.state
    assert store.goal_state.week_start_timestamp == T0 + WEEK_SECONDS


@pytest.mark.asyncio
async def test_run_loop_skips_failures_until_stopped():
    stop = asyncio.Event()
    calls = 0

    async def flaky() -> MarketIntelligence:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise DataUnavailable("warming up")
        if calls >= 3:
            stop.set()
        return make_intel(0.35)

    cycle = make_cycle(flaky, interval_seconds=0.01)
    cycle.intel_cache.ttl_seconds = 0

    await asyncio.wait_for(cycle.run(stop), timeout=5)

    assert cycle.cycles_skipped == 1
    assert cycle.cycles_run == 2
    assert stop.is_set()


@pytest.mark.asyncio
async def test_report_over_committed_data():
    cycle = make_cycle(fixed(make_intel(0.65)))
    await cycle.run_once(now=MID_WEEK)

    report = cycle.report(mark_price=110.0)

    assert report.total_trades == 0
    assert report.cost_basis == pytest.approx(100.0)
    assert report.unrealized_profit == pytest.approx(20.0 * 10.0)
    assert report.max_drawdown == 0.0


class CommitLogStore(InMemoryLedgerStore):
    def __init__(self, fail: bool = False) -> None:
        super().__init__()
        self.fail = fail
        self.commits = []

    async def commit(self, execution, snapshot, goal_state=None):
        self.commits.append((execution, snapshot, goal_state))
        if self.fail:
            raise PersistenceError("disk full")
        await super().commit(execution, snapshot, goal_state)


@pytest.mark.asyncio
async def test_trade_and_rollover_share_one_commit():
    store = CommitLogStore()
    cycle = make_cycle(fixed(make_intel(0.9)), store=store)

    result = await cycle.run_once(now=T0 + WEEK_SECONDS)

    assert result.progress.rolled_over is True
    assert result.executed is True
    assert len(store.commits) == 1
    execution, snapshot, goal_state = store.commits[0]
    assert execution == result.commit.execution
    assert snapshot == result.commit.snapshot
    assert goal_state == cycle.pacer.state


@pytest.mark.asyncio
async def test_failed_commit_leaves_cycle_unapplied():
    store = CommitLogStore(fail=True)
    sink = RecordingSink()
    cycle = make_cycle(fixed(make_intel(0.9)), store=store, sink=sink)
    original_goal = cycle.pacer.state

    with pytest.raises(PersistenceError):
        await cycle.run_once(now=T0 + WEEK_SECONDS)

    assert cycle.pacer.state == original_goal
    assert store.goal_state is None
    assert cycle.ledger.executions == ()
    assert cycle.ledger.snapshots == ()
    assert cycle.ledger.quote_balance == 10_000.0
    assert sink.records == []
    assert cycle.agent_store.read().decisions_made == 0
