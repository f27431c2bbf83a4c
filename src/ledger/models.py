# src/ledger/models.py
"""Immutable ledger records: executions, lots, trade pairs, snapshots."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.exceptions import ValidationError

# Residue below this is treated as zero when matching quantities.
QUANTITY_EPSILON = 1e-12


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


def _finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return value


@dataclass(frozen=True, slots=True)
class TradeExecution:
    id: str
    timestamp: float
    side: Side
    quantity: float  # base-asset units
    price: float  # quote per unit
    fee: float = 0.0  # quote
    reason: str = ""
    market_basis: str = ""

    @classmethod
    def create(
        cls,
        *,
        side: Side | str,
        quantity: float,
        price: float,
        fee: float = 0.0,
        timestamp: float,
        id: Optional[str] = None,
        reason: str = "",
        market_basis: str = "",
    ) -> "TradeExecution":
        """Validate raw fields and build an execution.

        Raises ValidationError on an unknown side, non-positive quantity or
        price, negative fee, or non-finite numbers.
        """
        try:
            side = Side(side)
        except ValueError:
            raise ValidationError(f"unknown side {side!r}") from None
        quantity = _finite("quantity", quantity)
        price = _finite("price", price)
        fee = _finite("fee", fee)
        timestamp = _finite("timestamp", timestamp)
        if quantity <= QUANTITY_EPSILON:
            raise ValidationError(f"quantity must be positive, got {quantity}")
        if price <= 0:
            raise ValidationError(f"price must be positive, got {price}")
        if fee < 0:
            raise ValidationError(f"fee must not be negative, got {fee}")
        return cls(
            id=id or uuid.uuid4().hex,
            timestamp=timestamp,
            side=side,
            quantity=quantity,
            price=price,
            fee=fee,
            reason=reason,
            market_basis=market_basis,
        )

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True, slots=True)
class Lot:
    execution_id: str
    origin_timestamp: float
    origin_price: float
    origin_quantity: float
    remaining_quantity: float
    origin_fee: float

    @property
    def unspent_fee(self) -> float:
        """Share of the buy fee still attached to the remaining quantity."""
        return self.origin_fee * self.remaining_quantity / self.origin_quantity

    def consume(self, quantity: float) -> "Lot":
        return Lot(
            execution_id=self.execution_id,
            origin_timestamp=self.origin_timestamp,
            origin_price=self.origin_price,
            origin_quantity=self.origin_quantity,
            remaining_quantity=self.remaining_quantity - quantity,
            origin_fee=self.origin_fee,
        )


@dataclass(frozen=True, slots=True)
class TradePair:
    sell_execution_id: str
    buy_execution_id: str
    matched_quantity: float
    buy_price: float
    sell_price: float
    apportioned_buy_fee: float
    apportioned_sell_fee: float
    net_profit: float
    holding_seconds: float = 0.0  # sell time minus lot open time

    @property
    def return_fraction(self) -> float:
        """Net profit relative to the capital the matched quantity cost."""
        cost = self.matched_quantity * self.buy_price
        if cost <= 0:
            return 0.0
        return self.net_profit / cost


@dataclass(frozen=True, slots=True)
class PortfolioSnapshot:
    timestamp: float
    base_balance: float
    quote_balance: float
    price: float
    total_value: float

    @classmethod
    def at(
        cls,
        *,
        timestamp: float,
        base_balance: float,
        quote_balance: float,
        price: float,
    ) -> "PortfolioSnapshot":
        """Build a snapshot whose total_value is derived from its balances."""
        return cls(
            timestamp=timestamp,
            base_balance=base_balance,
            quote_balance=quote_balance,
            price=price,
            total_value=quote_balance + base_balance * price,
        )
