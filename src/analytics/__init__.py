"""Risk and performance metrics."""

from .metrics import (
    PerformanceReport,
    cost_basis,
    excess_returns,
    max_drawdown,
    realized_pnl,
    sharpe_ratio,
    unrealized_pnl,
    win_rate,
)

__all__ = [
    "PerformanceReport",
    "cost_basis",
    "excess_returns",
    "max_drawdown",
    "realized_pnl",
    "sharpe_ratio",
    "unrealized_pnl",
    "win_rate",
]
