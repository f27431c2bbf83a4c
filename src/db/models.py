"""SQLAlchemy ORM models for trades, portfolio state, goal state, and decisions."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Trade(Base):
    """One executed trade. Rows are only ever inserted."""

    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    execution_id = Column(String(64), unique=True, nullable=False, index=True)
    timestamp = Column(Float, nullable=False, index=True)  # Unix seconds
    side = Column(String(4), nullable=False)  # "BUY" or "SELL"
    quantity = Column(Float, nullable=False)  # base units
    price = Column(Float, nullable=False)  # quote per unit
    fee = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)  # quantity * price
    reason = Column(Text, nullable=True)
    market_basis = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Trade(id={self.id}, side={self.side}, quantity={self.quantity}, price={self.price})>"


class Portfolio(Base):
    """Live portfolio state. Only ever contains one row (id=1)."""

    __tablename__ = "portfolio"

    id = Column(Integer, primary_key=True)
    base_balance = Column(Float, nullable=False)
    quote_balance = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    total_value = Column(Float, nullable=False)
    timestamp = Column(Float, nullable=False)

    def __repr__(self) -> str:
        return f"<Portfolio(base={self.base_balance}, quote={self.quote_balance}, total={self.total_value})>"


class PortfolioHistory(Base):
    """Snapshot of portfolio value, appended on every commit and mark."""

    __tablename__ = "portfolio_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(Float, nullable=False, index=True)
    base_balance = Column(Float, nullable=False)
    quote_balance = Column(Float, nullable=False)
    price = Column(Float, nullable=False)  # price at the time of snapshot
    total_value = Column(Float, nullable=False)


class GoalStateRow(Base):
    """Current weekly goal. Single row (id=1), replaced on rollover."""

    __tablename__ = "goal_state"

    id = Column(Integer, primary_key=True)
    starting_value = Column(Float, nullable=False)
    weekly_target_return = Column(Float, nullable=False)
    week_start_timestamp = Column(Float, nullable=False)


class DecisionLog(Base):
    """Audit trail of every emitted decision, executed or not."""

    __tablename__ = "decision_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(Float, nullable=False, index=True)
    action = Column(String(4), nullable=False)
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    confidence = Column(Float, nullable=False)
    reasoning = Column(Text, nullable=False)
    urgency = Column(String(8), nullable=False)
    market_basis = Column(Text, nullable=True)
    executed = Column(Boolean, default=False)
    rejection = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<DecisionLog(id={self.id}, action={self.action}, executed={self.executed})>"
