import pytest

from config.settings import Settings
from src.exceptions import ConfigError
from src.goals.pacer import DAY_SECONDS
from src.intel.signal import NEUTRAL_SIGNAL, MarketIntelligence
from src.ledger.position_ledger import InMemoryLedgerStore
from src.trading.bootstrap import build_trading_cycle

T0 = 1_700_000_000.0


async def neutral_fetch() -> MarketIntelligence:
    return MarketIntelligence(signal=NEUTRAL_SIGNAL, price=100.0, fetched_at=T0)


@pytest.mark.asyncio
async def test_fresh_store_starts_new_goal():
    store = InMemoryLedgerStore()
    s = Settings(STARTING_VALUE=5000.0, DECISION_INTERVAL_MS=30_000, AUTONOMY_LEVEL=0.6)

    cycle = await build_trading_cycle(s, store=store, fetch=neutral_fetch, clock=lambda: T0)

    assert cycle.ledger.quote_balance == 5000.0
    assert cycle.ledger.base_balance == 0.0
    assert cycle.pacer.state.week_start_timestamp == T0
    assert store.goal_state == cycle.pacer.state
    assert cycle.interval_seconds == 30.0
    assert cycle.agent_store.read().autonomy_level == 0.6
    assert cycle.intel_cache.ttl_seconds == 300.0


@pytest.mark.asyncio
async def test_existing_store_keeps_goal_week_and_balances():
    store = InMemoryLedgerStore()
    first = await build_trading_cycle(Settings(), store=store, fetch=neutral_fetch, clock=lambda: T0)
    await first.run_once(now=T0 + DAY_SECONDS)

    later = T0 + 2 * DAY_SECONDS
    second = await build_trading_cycle(
        Settings(STARTING_VALUE=1.0), store=store, fetch=neutral_fetch, clock=lambda: later,
    )

    assert second.pacer.state.week_start_timestamp == T0
    assert second.pacer.state.starting_value == 10000.0
    assert second.ledger.quote_balance == first.ledger.quote_balance
    assert len(second.ledger.snapshots) == len(first.ledger.snapshots)


@pytest.mark.asyncio
async def test_invalid_settings_rejected():
    with pytest.raises(ConfigError):
        await build_trading_cycle(Settings(MAX_POSITION_FRACTION=2.0), fetch=neutral_fetch)
