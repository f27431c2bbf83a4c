# src/ledger/lots.py
"""FIFO lot matching of sell executions against open buy lots."""

from __future__ import annotations

from typing import Iterable, Sequence

from src.exceptions import InsufficientInventory, ValidationError
from src.ledger.models import (
    QUANTITY_EPSILON,
    Lot,
    Side,
    TradeExecution,
    TradePair,
)


def fee_share(fee: float, total_quantity: float, quantity: float) -> float:
    """Portion of ``fee`` attributable to ``quantity`` out of ``total_quantity``."""
    if total_quantity <= 0:
        return 0.0
    return fee * quantity / total_quantity


def open_lot(buy: TradeExecution) -> Lot:
    if buy.side is not Side.BUY:
        raise ValidationError(f"cannot open a lot from a {buy.side.value} execution")
    return Lot(
        execution_id=buy.id,
        origin_timestamp=buy.timestamp,
        origin_price=buy.price,
        origin_quantity=buy.quantity,
        remaining_quantity=buy.quantity,
        origin_fee=buy.fee,
    )


def match_sell(
    sell: TradeExecution,
    open_lots: Sequence[Lot],
) -> tuple[list[TradePair], tuple[Lot, ...]]:
    """Match a sell against the oldest open lots first.

    Returns the trade pairs and the updated queue. The input queue is left
    untouched, so a failed match costs the caller nothing.

    Raises:
        ValidationError: ``sell`` is not a SELL execution.
        InsufficientInventory: the queue runs out before the sell is covered.
    """
    if sell.side is not Side.SELL:
        raise ValidationError(f"cannot match a {sell.side.value} execution")

    queue = list(open_lots)
    pairs: list[TradePair] = []
    remaining = sell.quantity

    while remaining > QUANTITY_EPSILON:
        if not queue:
            available = sell.quantity - remaining
            raise InsufficientInventory(
                f"sell {sell.id} needs {sell.quantity:.8f}, "
                f"open lots cover only {available:.8f}"
            )
        lot = queue[0]
        matched = min(remaining, lot.remaining_quantity)
        sell_fee = fee_share(sell.fee, sell.quantity, matched)
        buy_fee = fee_share(lot.origin_fee, lot.origin_quantity, matched)
        pairs.append(
            TradePair(
                sell_execution_id=sell.id,
                buy_execution_id=lot.execution_id,
                matched_quantity=matched,
                buy_price=lot.origin_price,
                sell_price=sell.price,
                apportioned_buy_fee=buy_fee,
                apportioned_sell_fee=sell_fee,
                net_profit=matched * (sell.price - lot.origin_price) - sell_fee - buy_fee,
                holding_seconds=max(sell.timestamp - lot.origin_timestamp, 0.0),
            )
        )
        remaining -= matched
        lot = lot.consume(matched)
        if lot.remaining_quantity <= QUANTITY_EPSILON:
            queue.pop(0)
        else:
            queue[0] = lot

    return pairs, tuple(queue)


class LotBook:
    """Open-lot queue plus every pair produced so far, built from executions."""

    def __init__(
        self,
        open_lots: Iterable[Lot] = (),
        pairs: Iterable[TradePair] = (),
    ) -> None:
        self._open_lots: tuple[Lot, ...] = tuple(
            sorted(open_lots, key=lambda lot: lot.origin_timestamp)
        )
        self._pairs: tuple[TradePair, ...] = tuple(pairs)

    @classmethod
    def replay(cls, executions: Iterable[TradeExecution]) -> "LotBook":
        book = cls()
        for execution in executions:
            book = book.apply(execution)
        return book

    def apply(self, execution: TradeExecution) -> "LotBook":
        """Return a new book with ``execution`` applied; self is unchanged."""
        if execution.side is Side.BUY:
            lots = self._open_lots + (open_lot(execution),)
            return LotBook(lots, self._pairs)
        new_pairs, lots = match_sell(execution, self._open_lots)
        return LotBook(lots, self._pairs + tuple(new_pairs))

    @property
    def open_lots(self) -> tuple[Lot, ...]:
        return self._open_lots

    @property
    def pairs(self) -> tuple[TradePair, ...]:
        return self._pairs

    @property
    def open_quantity(self) -> float:
        return sum(lot.remaining_quantity for lot in self._open_lots)

    def pairs_for(self, sell_execution_id: str) -> list[TradePair]:
        return [p for p in self._pairs if p.sell_execution_id == sell_execution_id]

    def __len__(self) -> int:
        return len(self._open_lots)
