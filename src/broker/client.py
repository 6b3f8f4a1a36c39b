"""
Broker boundary: the calls the execution coordinator makes against a brokerage.

Every call may raise BrokerTransientError (retry next cycle) or
BrokerRejection (terminal for that request).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from strategy_core.contracts import Holding, OrderStatus, OrderType, Quote, Side


@dataclass(frozen=True)
class SubmitAck:
    broker_order_id: str


@dataclass(frozen=True)
class OrderUpdate:
    """Broker view of one order, used to reconcile recorded status."""

    broker_order_id: str
    status: OrderStatus
    filled_quantity: float = 0.0
    filled_price: float | None = None
    filled_at: datetime | None = None
    reason: str | None = None


class BrokerClient(Protocol):
    def get_holding(self, symbol: str) -> Holding:
        """Current position; quantity 0 when nothing is held."""
        ...

    def get_quote(self, symbol: str) -> Quote:
        ...

    def submit_order(
        self,
        symbol: str,
        side: Side,
        order_type: OrderType,
        quantity: int,
        price: float | None = None,
        *,
        exchange_code: str | None = None,
        daytime: bool = False,
    ) -> SubmitAck:
        ...

    def cancel_order(self, broker_order_id: str, symbol: str, quantity: int) -> None:
        ...

    def get_order_status(self, broker_order_id: str, symbol: str) -> OrderUpdate:
        ...
