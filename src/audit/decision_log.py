# src/audit/decision_log.py
"""Hands every emitted decision to an audit sink."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional, Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.db.database import DEFAULT_ASYNC_DATABASE_URL, get_session
from src.db.models import DecisionLog
from src.decision.models import Decision
from src.exceptions import PersistenceError

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class DecisionAuditRecord:
    timestamp: float
    action: str
    quantity: float
    price: float
    confidence: float
    reasoning: str
    urgency: str
    market_basis: str
    executed: bool = False
    rejection: Optional[str] = None

    @classmethod
    def from_decision(
        cls,
        decision: Decision,
        *,
        executed: bool,
        rejection: Optional[str] = None,
    ) -> "DecisionAuditRecord":
        return cls(
            timestamp=decision.timestamp,
            action=decision.action.value,
            quantity=decision.quantity,
            price=decision.price,
            confidence=decision.confidence,
            reasoning=decision.reasoning,
            urgency=decision.urgency.value,
            market_basis=decision.market_basis,
            executed=executed,
            rejection=rejection,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class DecisionSink(Protocol):
    async def emit(self, record: DecisionAuditRecord) -> None: ...


class LoggingDecisionSink:
    """Writes each record as a structured ``decision`` log event."""

    async def emit(self, record: DecisionAuditRecord) -> None:
        logger.info("decision", **record.as_dict())


class SqlDecisionSink:
    """Appends each record to the ``decision_log`` table."""

    def __init__(self, db_url: str = DEFAULT_ASYNC_DATABASE_URL) -> None:
        self.db_url = db_url

    async def emit(self, record: DecisionAuditRecord) -> None:
        try:
            async with get_session(self.db_url) as s:
                s.add(DecisionLog(**record.as_dict()))
        except SQLAlchemyError as e:
            raise PersistenceError(f"decision log write failed: {e}") from e


class FanOutDecisionSink:
    """Emits to several sinks; one failing sink does not stop the others."""

    def __init__(self, *sinks: DecisionSink) -> None:
        self.sinks = sinks

    async def emit(self, record: DecisionAuditRecord) -> None:
        for sink in self.sinks:
            try:
                await sink.emit(record)
            except PersistenceError as e:
                logger.error(
                    "decision_sink_failed",
                    sink=type(sink).__name__,
                    error=str(e),
                )
