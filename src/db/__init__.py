"""Database module for the pacer trading simulator."""

from .models import Base, DecisionLog, GoalStateRow, Portfolio, PortfolioHistory, Trade
from .database import get_session, init_db_async, close_db_async

__all__ = [
    "Base",
    "Trade",
    "Portfolio",
    "PortfolioHistory",
    "GoalStateRow",
    "DecisionLog",
    "get_session",
    "init_db_async",
    "close_db_async",
]
