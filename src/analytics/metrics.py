"""Risk and performance metrics over ledger-derived series.

Every function here is pure: same inputs, same output, no hidden state.
Empty or degenerate inputs return 0.0 rather than NaN or infinity.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Sequence, Union

import numpy as np

from src.ledger.models import Lot, PortfolioSnapshot, TradePair

YEAR_SECONDS = 365 * 86_400.0


def cost_basis(open_lots: Sequence[Lot]) -> float:
    """Fee-inclusive average cost per unit of the open lots."""
    total_quantity = sum(lot.remaining_quantity for lot in open_lots)
    if total_quantity <= 0:
        return 0.0
    total_cost = sum(
        lot.origin_price * lot.remaining_quantity + lot.unspent_fee
        for lot in open_lots
    )
    return total_cost / total_quantity


def win_rate(pairs: Sequence[TradePair]) -> float:
    if not pairs:
        return 0.0
    wins = sum(1 for p in pairs if p.net_profit > 0)
    return wins / len(pairs)


def excess_returns(pairs: Sequence[TradePair], annual_rate: float = 0.0) -> list[float]:
    """Pair returns less the risk-free rate accrued over each holding period."""
    return [
        p.return_fraction - annual_rate * p.holding_seconds / YEAR_SECONDS
        for p in pairs
    ]


def sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> float:
    """(mean - risk_free_rate) / sample standard deviation."""
    if len(returns) < 2:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = float(np.std(arr, ddof=1))
    if std == 0 or not np.isfinite(std):
        return 0.0
    return float((np.mean(arr) - risk_free_rate) / std)


def max_drawdown(series: Iterable[Union[PortfolioSnapshot, float]]) -> float:
    """Largest peak-to-trough decline, in percent of the running peak."""
    values = [
        s.total_value if isinstance(s, PortfolioSnapshot) else float(s)
        for s in series
    ]
    if not values:
        return 0.0

    arr = np.asarray(values, dtype=float)
    peaks = np.maximum.accumulate(arr)
    valid = peaks > 0
    if not valid.any():
        return 0.0
    drawdowns = (peaks[valid] - arr[valid]) / peaks[valid]
    return float(max(drawdowns.max(), 0.0) * 100)


def realized_pnl(pairs: Sequence[TradePair]) -> float:
    return float(sum(p.net_profit for p in pairs))


def unrealized_pnl(open_lots: Sequence[Lot], mark_price: float) -> float:
    """Mark-to-market on open lots, net of the fees still attached to them."""
    return float(sum(
        (mark_price - lot.origin_price) * lot.remaining_quantity - lot.unspent_fee
        for lot in open_lots
    ))


@dataclass(frozen=True)
class PerformanceReport:
    """Snapshot of portfolio performance at one mark price."""

    total_trades: int
    win_rate: float
    avg_return: float
    sharpe_ratio: float
    total_realized_profit: float
    unrealized_profit: float
    total_profit: float
    cost_basis: float
    max_drawdown: float

    @classmethod
    def build(
        cls,
        *,
        pairs: Sequence[TradePair],
        open_lots: Sequence[Lot],
        snapshots: Sequence[PortfolioSnapshot],
        mark_price: float,
        risk_free_rate: float = 0.0,
    ) -> "PerformanceReport":
        returns = [p.return_fraction for p in pairs]
        realized = realized_pnl(pairs)
        unrealized = unrealized_pnl(open_lots, mark_price)
        return cls(
            total_trades=len(pairs),
            win_rate=win_rate(pairs),
            avg_return=float(np.mean(returns)) if returns else 0.0,
            sharpe_ratio=sharpe_ratio(excess_returns(pairs, risk_free_rate)),
            total_realized_profit=realized,
            unrealized_profit=unrealized,
            total_profit=realized + unrealized,
            cost_basis=cost_basis(open_lots),
            max_drawdown=max_drawdown(snapshots),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return all metrics as dictionary."""
        return asdict(self)
