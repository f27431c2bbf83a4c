#!/usr/bin/env python3
# scripts/run_trader.py
"""Run the goal-paced trading simulator.

Usage:
    uv run python scripts/run_trader.py
    uv run python scripts/run_trader.py --once --memory
    uv run python scripts/run_trader.py --interval 30 --db sqlite+aiosqlite:///data/pacer.db

This script:
1. Restores the ledger and weekly goal from the database
2. Pulls market intelligence from INTEL_BASE_URL (cached for CACHE_TTL_MS)
3. Runs one decision cycle per interval until interrupted
4. Prints a performance summary on exit
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path

# Add project root to path for imports
_project_root = Path(__file__).parent.parent
sys.path.insert(0, str(_project_root))

import structlog

from config.settings import settings
from src.audit.decision_log import FanOutDecisionSink, LoggingDecisionSink, SqlDecisionSink
from src.db.database import close_db_async
from src.db.ledger_store import SqlLedgerStore
from src.exceptions import ConfigError, DataUnavailable, PersistenceError
from src.ledger.position_ledger import InMemoryLedgerStore
from src.trading.bootstrap import build_trading_cycle
from src.utils.logging import configure_logging

logger = structlog.get_logger()


async def run_trader(db_url: str, once: bool, memory: bool) -> None:
    if memory:
        store = InMemoryLedgerStore()
        sink = LoggingDecisionSink()
    else:
        store = SqlLedgerStore(db_url)
        await store.bootstrap()
        sink = FanOutDecisionSink(LoggingDecisionSink(), SqlDecisionSink(db_url))

    try:
        cycle = await build_trading_cycle(settings, store=store, sink=sink)
    except (ConfigError, PersistenceError) as e:
        logger.error("startup_failed", error=str(e))
        print(f"\nError: {e}")
        sys.exit(1)

    print(f"\n{'='*60}")
    print("TRADER STARTED")
    print(f"{'='*60}")
    print(f"Starting value:  ${cycle.pacer.state.starting_value:,.2f}")
    print(f"Weekly target:   {cycle.pacer.state.weekly_target_return:.1%}")
    print(f"Interval:        {cycle.interval_seconds:.0f}s")
    print(f"Intel source:    {settings.INTEL_BASE_URL}")
    print(f"Storage:         {'memory' if memory else db_url}")
    print(f"{'='*60}\n")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        if once:
            try:
                result = await cycle.run_once()
                print(f"{result.decision.action.value}: {result.decision.reasoning}")
            except DataUnavailable as e:
                print(f"\nNo market data: {e}")
        else:
            await cycle.run(stop_event)
    finally:
        last = cycle.ledger.snapshots[-1] if cycle.ledger.snapshots else None
        if last is not None:
            report = cycle.report(last.price)
            print(f"\n{'='*60}")
            print("PERFORMANCE SUMMARY")
            print(f"{'='*60}")
            print(f"Portfolio value:   ${last.total_value:,.2f}")
            print(f"Closed pairs:      {report.total_trades}")
            print(f"Win rate:          {report.win_rate:.1%}")
            print(f"Sharpe ratio:      {report.sharpe_ratio:.2f}")
            print(f"Realized P&L:      ${report.total_realized_profit:,.2f}")
            print(f"Unrealized P&L:    ${report.unrealized_profit:,.2f}")
            print(f"Cost basis:        ${report.cost_basis:,.2f}")
            print(f"Max drawdown:      {report.max_drawdown:.2f}%")
            print(f"{'='*60}\n")
        if not memory:
            await close_db_async()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the goal-paced trading simulator",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--db",
        type=str,
        default=settings.DATABASE_URL,
        help="Async SQLAlchemy database URL",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between decision cycles (overrides DECISION_INTERVAL_MS)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single decision cycle and exit",
    )
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Keep the ledger in memory instead of the database",
    )
    args = parser.parse_args()

    if args.interval is not None:
        settings.DECISION_INTERVAL_MS = int(args.interval * 1000)

    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
    asyncio.run(run_trader(db_url=args.db, once=args.once, memory=args.memory))


if __name__ == "__main__":
    main()
