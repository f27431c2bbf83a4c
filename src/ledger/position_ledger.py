# src/ledger/position_ledger.py
"""Append-only ledger of executions, balances, and portfolio snapshots.

Single writer: every mutation runs under one asyncio.Lock. Each mutation
computes the complete next state first, persists it through the store in one
call, and only then swaps it in. A failure anywhere leaves the previous state
intact, so the snapshot sequence always matches the execution log.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

import structlog

from src.decision.models import Action, Decision
from src.exceptions import (
    InsufficientFunds,
    InsufficientHoldings,
    InsufficientInventory,
    ValidationError,
)
from src.goals.pacer import GoalState
from src.ledger.lots import LotBook
from src.ledger.models import (
    QUANTITY_EPSILON,
    Lot,
    PortfolioSnapshot,
    Side,
    TradeExecution,
    TradePair,
)

logger = structlog.get_logger()

# Tolerance for quote-currency comparisons.
MONEY_EPSILON = 1e-9

# Snapshots kept in memory; the store holds the full series.
DEFAULT_SNAPSHOT_HISTORY = 10_080


class LedgerStore(Protocol):
    """Persistence boundary for the ledger."""

    async def commit(
        self,
        execution: Optional[TradeExecution],
        snapshot: PortfolioSnapshot,
        goal_state: Optional[GoalState] = None,
    ) -> None:
        """Write ``snapshot`` plus any ``execution`` and ``goal_state`` in one transaction."""
        ...

    async def read_snapshot(self) -> Optional[PortfolioSnapshot]: ...

    async def load_executions(self) -> list[TradeExecution]: ...

    async def load_snapshots(self) -> list[PortfolioSnapshot]: ...

    async def load_goal_state(self) -> Optional[GoalState]: ...

    async def save_goal_state(self, state: GoalState) -> None: ...


class InMemoryLedgerStore:
    """Process-local store, used by tests and dry runs."""

    def __init__(self) -> None:
        self.executions: list[TradeExecution] = []
        self.snapshots: list[PortfolioSnapshot] = []
        self.goal_state: Optional[GoalState] = None

    async def commit(
        self,
        execution: Optional[TradeExecution],
        snapshot: PortfolioSnapshot,
        goal_state: Optional[GoalState] = None,
    ) -> None:
        if execution is not None:
            self.executions.append(execution)
        self.snapshots.append(snapshot)
        if goal_state is not None:
            self.goal_state = goal_state

    async def read_snapshot(self) -> Optional[PortfolioSnapshot]:
        return self.snapshots[-1] if self.snapshots else None

    async def load_executions(self) -> list[TradeExecution]:
        return list(self.executions)

    async def load_snapshots(self) -> list[PortfolioSnapshot]:
        return list(self.snapshots)

    async def load_goal_state(self) -> Optional[GoalState]:
        return self.goal_state

    async def save_goal_state(self, state: GoalState) -> None:
        self.goal_state = state


@dataclass(frozen=True, slots=True)
class LedgerView:
    """Immutable read-only copy of committed ledger data, safe to share."""

    executions: tuple[TradeExecution, ...]
    open_lots: tuple[Lot, ...]
    pairs: tuple[TradePair, ...]
    snapshots: tuple[PortfolioSnapshot, ...]
    base_balance: float
    quote_balance: float

    def snapshot_at(self, price: float, timestamp: float) -> PortfolioSnapshot:
        return PortfolioSnapshot.at(
            timestamp=timestamp,
            base_balance=self.base_balance,
            quote_balance=self.quote_balance,
            price=price,
        )


@dataclass(frozen=True, slots=True)
class CommitResult:
    execution: TradeExecution
    pairs: tuple[TradePair, ...]
    snapshot: PortfolioSnapshot


class PositionLedger:
    def __init__(
        self,
        *,
        base_balance: float = 0.0,
        quote_balance: float = 0.0,
        store: Optional[LedgerStore] = None,
        executions: Sequence[TradeExecution] = (),
        snapshots: Sequence[PortfolioSnapshot] = (),
        snapshot_history: int = DEFAULT_SNAPSHOT_HISTORY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if base_balance < 0 or quote_balance < 0:
            raise ValidationError("balances must not be negative")
        if snapshot_history < 1:
            raise ValidationError(f"snapshot_history must be at least 1, got {snapshot_history}")
        self.store: LedgerStore = store or InMemoryLedgerStore()
        self._base = float(base_balance)
        self._quote = float(quote_balance)
        self._executions: tuple[TradeExecution, ...] = tuple(executions)
        self._book = LotBook.replay(self._executions)
        self._snapshots: deque[PortfolioSnapshot] = deque(snapshots, maxlen=snapshot_history)
        self._clock = clock
        self._lock = asyncio.Lock()

    @classmethod
    async def restore(
        cls,
        store: LedgerStore,
        *,
        initial_base: float = 0.0,
        initial_quote: float = 0.0,
        snapshot_history: int = DEFAULT_SNAPSHOT_HISTORY,
        clock: Callable[[], float] = time.time,
    ) -> "PositionLedger":
        """Rebuild from persisted executions and the current snapshot row."""
        executions = await store.load_executions()
        snapshots = await store.load_snapshots()
        current = await store.read_snapshot()
        base, quote = initial_base, initial_quote
        if current is not None:
            base, quote = current.base_balance, current.quote_balance
        ledger = cls(
            base_balance=base,
            quote_balance=quote,
            store=store,
            executions=executions,
            snapshots=snapshots,
            snapshot_history=snapshot_history,
            clock=clock,
        )
        logger.info(
            "ledger_restored",
            executions=len(executions),
            snapshots=len(snapshots),
            base_balance=base,
            quote_balance=quote,
        )
        return ledger

    # ── Read side ──────────────────────────────────────────────────

    @property
    def base_balance(self) -> float:
        return self._base

    @property
    def quote_balance(self) -> float:
        return self._quote

    @property
    def executions(self) -> tuple[TradeExecution, ...]:
        return self._executions

    @property
    def snapshots(self) -> tuple[PortfolioSnapshot, ...]:
        """The most recent snapshots, oldest first."""
        return tuple(self._snapshots)

    @property
    def lot_book(self) -> LotBook:
        return self._book

    @property
    def is_writing(self) -> bool:
        return self._lock.locked()

    def snapshot_at(self, price: float, timestamp: Optional[float] = None) -> PortfolioSnapshot:
        return PortfolioSnapshot.at(
            timestamp=self._clock() if timestamp is None else timestamp,
            base_balance=self._base,
            quote_balance=self._quote,
            price=price,
        )

    def view(self) -> LedgerView:
        # Taken without the lock: all fields are swapped together after a commit.
        return LedgerView(
            executions=self._executions,
            open_lots=self._book.open_lots,
            pairs=self._book.pairs,
            snapshots=tuple(self._snapshots),
            base_balance=self._base,
            quote_balance=self._quote,
        )

    # ── Write side ─────────────────────────────────────────────────

    async def record(
        self,
        execution: TradeExecution,
        mark_price: Optional[float] = None,
        *,
        goal_state: Optional[GoalState] = None,
    ) -> CommitResult:
        """Apply an execution, persist it with a fresh snapshot, and return both.

        A rolled-over ``goal_state`` is written in the same store commit.

        Raises:
            ValidationError: execution is older than the last one recorded.
            InsufficientFunds: a buy costs more than the quote balance.
            InsufficientHoldings: a sell exceeds the base balance.
            InsufficientInventory: a sell exceeds the open lot quantity.
            PersistenceError: the store failed; nothing was applied.
        """
        async with self._lock:
            return await self._commit_execution(execution, mark_price, goal_state)

    async def apply_decision(
        self,
        decision: Decision,
        *,
        fee_rate: float = 0.0,
        now: Optional[float] = None,
        goal_state: Optional[GoalState] = None,
    ) -> CommitResult:
        if decision.action is Action.HOLD:
            raise ValidationError("a HOLD decision has nothing to apply")
        execution = TradeExecution.create(
            side=decision.action.value,
            quantity=decision.quantity,
            price=decision.price,
            fee=decision.notional * fee_rate,
            timestamp=decision.timestamp if now is None else now,
            reason=decision.reasoning,
            market_basis=decision.market_basis,
        )
        return await self.record(execution, mark_price=decision.price, goal_state=goal_state)

    async def mark(
        self,
        price: float,
        now: Optional[float] = None,
        *,
        goal_state: Optional[GoalState] = None,
    ) -> PortfolioSnapshot:
        """Append a snapshot at ``price`` without trading."""
        if price <= 0:
            raise ValidationError(f"mark price must be positive, got {price}")
        async with self._lock:
            snapshot = self.snapshot_at(price, now)
            self._check_order(snapshot.timestamp)
            await self.store.commit(None, snapshot, goal_state)
            self._snapshots.append(snapshot)
            return snapshot

    async def _commit_execution(
        self,
        execution: TradeExecution,
        mark_price: Optional[float],
        goal_state: Optional[GoalState] = None,
    ) -> CommitResult:
        self._check_order(execution.timestamp)
        if self._executions and execution.timestamp < self._executions[-1].timestamp:
            raise ValidationError(
                f"execution {execution.id} at {execution.timestamp} predates "
                f"the last recorded execution"
            )

        base, quote = self._base, self._quote
        try:
            if execution.side is Side.BUY:
                cost = execution.notional + execution.fee
                if cost > quote + MONEY_EPSILON:
                    raise InsufficientFunds(
                        f"buy costs {cost:.2f}, quote balance is {quote:.2f}"
                    )
                base += execution.quantity
                quote = max(quote - cost, 0.0)
            else:
                if execution.quantity > base + QUANTITY_EPSILON:
                    raise InsufficientHoldings(
                        f"sell of {execution.quantity:.8f} exceeds base balance {base:.8f}"
                    )
                base = max(base - execution.quantity, 0.0)
                quote += execution.notional - execution.fee
            book = self._book.apply(execution)
        except (InsufficientFunds, InsufficientHoldings, InsufficientInventory) as e:
            logger.warning(
                "execution_rejected",
                side=execution.side.value,
                quantity=execution.quantity,
                price=execution.price,
                reason=type(e).__name__,
                detail=str(e),
            )
            raise

        if base <= QUANTITY_EPSILON:
            base = 0.0
        snapshot = PortfolioSnapshot.at(
            timestamp=execution.timestamp,
            base_balance=base,
            quote_balance=quote,
            price=mark_price if mark_price is not None else execution.price,
        )
        await self.store.commit(execution, snapshot, goal_state)

        new_pairs = book.pairs[len(self._book.pairs):]
        self._executions = self._executions + (execution,)
        self._book = book
        self._base, self._quote = base, quote
        self._snapshots.append(snapshot)

        logger.info(
            "trade_committed",
            execution_id=execution.id,
            side=execution.side.value,
            quantity=execution.quantity,
            price=execution.price,
            fee=execution.fee,
            pairs=len(new_pairs),
            realized=round(sum(p.net_profit for p in new_pairs), 8),
            base_balance=base,
            quote_balance=quote,
            total_value=snapshot.total_value,
        )
        return CommitResult(execution=execution, pairs=new_pairs, snapshot=snapshot)

    def _check_order(self, timestamp: float) -> None:
        if self._snapshots and timestamp < self._snapshots[-1].timestamp:
            raise ValidationError(
                f"timestamp {timestamp} predates the last snapshot "
                f"at {self._snapshots[-1].timestamp}"
            )
