"""Async SQL implementation of the ledger persistence boundary."""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from src.db.database import DEFAULT_ASYNC_DATABASE_URL, get_session, init_db_async
from src.db.models import GoalStateRow, Portfolio, PortfolioHistory, Trade
from src.exceptions import PersistenceError
from src.goals.pacer import GoalState
from src.ledger.models import PortfolioSnapshot, Side, TradeExecution

logger = structlog.get_logger()

_PORTFOLIO_ROW_ID = 1
_GOAL_ROW_ID = 1


def _goal_row(state: GoalState) -> GoalStateRow:
    return GoalStateRow(
        id=_GOAL_ROW_ID,
        starting_value=state.starting_value,
        weekly_target_return=state.weekly_target_return,
        week_start_timestamp=state.week_start_timestamp,
    )


def _snapshot_from_row(row) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        timestamp=row.timestamp,
        base_balance=row.base_balance,
        quote_balance=row.quote_balance,
        price=row.price,
        total_value=row.total_value,
    )


class SqlLedgerStore:
    """Trades, portfolio rows, and goal rollovers; each commit is one transaction."""

    def __init__(self, db_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
        self.db_url = db_url

    async def bootstrap(self) -> None:
        """Create tables if needed."""
        try:
            await init_db_async(self.db_url)
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot initialize {self.db_url}: {e}") from e

    async def commit(
        self,
        execution: Optional[TradeExecution],
        snapshot: PortfolioSnapshot,
        goal_state: Optional[GoalState] = None,
    ) -> None:
        try:
            async with get_session(self.db_url) as s:
                if execution is not None:
                    s.add(Trade(
                        execution_id=execution.id,
                        timestamp=execution.timestamp,
                        side=execution.side.value,
                        quantity=execution.quantity,
                        price=execution.price,
                        fee=execution.fee,
                        total=execution.notional,
                        reason=execution.reason or None,
                        market_basis=execution.market_basis or None,
                    ))
                await s.merge(Portfolio(
                    id=_PORTFOLIO_ROW_ID,
                    base_balance=snapshot.base_balance,
                    quote_balance=snapshot.quote_balance,
                    price=snapshot.price,
                    total_value=snapshot.total_value,
                    timestamp=snapshot.timestamp,
                ))
                s.add(PortfolioHistory(
                    timestamp=snapshot.timestamp,
                    base_balance=snapshot.base_balance,
                    quote_balance=snapshot.quote_balance,
                    price=snapshot.price,
                    total_value=snapshot.total_value,
                ))
                if goal_state is not None:
                    await s.merge(_goal_row(goal_state))
        except SQLAlchemyError as e:
            logger.error("ledger_commit_failed", error=str(e))
            raise PersistenceError(f"ledger commit failed: {e}") from e

    async def read_snapshot(self) -> Optional[PortfolioSnapshot]:
        try:
            async with get_session(self.db_url) as s:
                row = await s.get(Portfolio, _PORTFOLIO_ROW_ID)
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot read portfolio: {e}") from e
        return _snapshot_from_row(row) if row is not None else None

    async def load_executions(self) -> list[TradeExecution]:
        try:
            async with get_session(self.db_url) as s:
                result = await s.execute(
                    select(Trade).order_by(Trade.timestamp, Trade.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot load trades: {e}") from e
        return [
            TradeExecution(
                id=row.execution_id,
                timestamp=row.timestamp,
                side=Side(row.side),
                quantity=row.quantity,
                price=row.price,
                fee=row.fee or 0.0,
                reason=row.reason or "",
                market_basis=row.market_basis or "",
            )
            for row in rows
        ]

    async def load_snapshots(self) -> list[PortfolioSnapshot]:
        try:
            async with get_session(self.db_url) as s:
                result = await s.execute(
                    select(PortfolioHistory).order_by(
                        PortfolioHistory.timestamp, PortfolioHistory.id,
                    )
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot load portfolio history: {e}") from e
        return [_snapshot_from_row(row) for row in rows]

    async def load_goal_state(self) -> Optional[GoalState]:
        try:
            async with get_session(self.db_url) as s:
                row = await s.get(GoalStateRow, _GOAL_ROW_ID)
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot read goal state: {e}") from e
        if row is None:
            return None
        return GoalState(
            starting_value=row.starting_value,
            weekly_target_return=row.weekly_target_return,
            week_start_timestamp=row.week_start_timestamp,
        )

    async def save_goal_state(self, state: GoalState) -> None:
        try:
            async with get_session(self.db_url) as s:
                await s.merge(_goal_row(state))
        except SQLAlchemyError as e:
            raise PersistenceError(f"cannot save goal state: {e}") from e
