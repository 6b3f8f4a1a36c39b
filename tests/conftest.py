"""Pytest fixtures: strategies, orders, snapshots and an in-memory broker double."""

from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from broker.client import OrderUpdate, SubmitAck
from journal.writer import ExecutionJournal
from store.strategy_store import StrategyStore
from strategy_core.contracts import (
    Holding,
    Market,
    MarketSnapshot,
    Order,
    OrderStatus,
    OrderType,
    Quote,
    Side,
    Strategy,
    StrategyStatus,
    StrategyType,
)
from strategy_core.errors import BrokerRejection
from strategy_core.session_clock import session_at


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# Reference instants (DST, July 2024; display time is UTC+9)
PRE_MARKET_DST = utc(2024, 7, 10, 8, 30)  # 17:30 KST
REGULAR_EARLY_DST = utc(2024, 7, 10, 13, 35)  # 22:35 KST, 5 min after open
REGULAR_DST = utc(2024, 7, 10, 14, 0)  # 23:00 KST, 30 min after open
CLOSED_DST = utc(2024, 7, 11, 1, 0)  # 10:00 KST


SPLIT_PARAMS = {
    "basePrice": 100,
    "totalAmount": 30,
    "splitCount": 3,
    "side": "BUY",
    "declineValue": 5,
    "declineUnit": "PERCENT",
    "distributionType": "EQUAL",
    "targetReturnRate": 10,
    "exchangeCode": "NASD",
}

LOO_LOC_PARAMS = {
    "looEnabled": True,
    "looQty": 2,
    "locBuyEnabled": True,
    "locBuyQty": 3,
    "targetReturnRate": 10,
    "exchangeCode": "NASD",
}


def make_strategy(
    type: StrategyType = StrategyType.SPLIT_ORDER,
    params: dict | None = None,
    *,
    market: Market = Market.FOREIGN,
    status: StrategyStatus = StrategyStatus.ACTIVE,
    updated_at: datetime = utc(2024, 1, 1),
    **extra,
) -> Strategy:
    if params is None:
        params = dict(SPLIT_PARAMS if type is StrategyType.SPLIT_ORDER else LOO_LOC_PARAMS)
    return Strategy(
        id="strat-1",
        owner="tester",
        name="test",
        symbol="AAPL",
        market=market,
        type=type,
        status=status,
        params=params,
        created_at=utc(2024, 1, 1),
        updated_at=updated_at,
        **extra,
    )


_order_seq = 0


def make_order(
    side: Side = Side.BUY,
    quantity: int = 10,
    price: float | None = 100.0,
    *,
    status: OrderStatus = OrderStatus.SUBMITTED,
    order_type: OrderType = OrderType.LIMIT,
    submitted_at: datetime = utc(2024, 7, 10, 8, 0),
    symbol: str = "AAPL",
    **extra,
) -> Order:
    global _order_seq
    _order_seq += 1
    fields = dict(
        id=f"ord-{_order_seq:04d}",
        strategy_id="strat-1",
        symbol=symbol,
        side=side,
        order_type=order_type,
        quantity=quantity,
        price=price,
        status=status,
        submitted_at=submitted_at,
        broker_order_id=f"brk-{_order_seq:04d}",
    )
    fields.update(extra)
    return Order(**fields)


def filled(side: Side, qty: float, price: float, at: datetime, symbol: str = "AAPL", **extra) -> Order:
    fields = dict(
        status=OrderStatus.FILLED,
        filled_quantity=qty,
        filled_price=price,
        filled_at=at,
        submitted_at=at,
        symbol=symbol,
    )
    fields.update(extra)
    return make_order(side, int(qty), price, **fields)


def snapshot(
    qty: int = 0,
    avg: float = 0.0,
    price: float = 100.0,
    prev_close: float = 100.0,
    at: datetime = REGULAR_DST,
) -> MarketSnapshot:
    return MarketSnapshot(
        holding=Holding(symbol="AAPL", quantity=qty, avg_cost=avg),
        quote=Quote(symbol="AAPL", current_price=price, previous_close=prev_close),
        session=session_at(at),
    )


class FakeBroker:
    """
    Scriptable broker double. ``script`` maps a submit call index to an
    exception to raise; every other submission is accepted.
    """

    def __init__(self, holding: Holding | None = None, quote: Quote | None = None) -> None:
        self.holding = holding or Holding("AAPL", 0, 0.0)
        self.quote = quote or Quote("AAPL", 100.0, 100.0)
        self.script: dict[int, Exception] = {}
        self.snapshot_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self.submitted: list[tuple] = []
        self.cancelled: list[str] = []
        self.statuses: dict[str, OrderUpdate] = {}
        self.on_submit = None

    def get_holding(self, symbol: str) -> Holding:
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return replace(self.holding, symbol=symbol)

    def get_quote(self, symbol: str) -> Quote:
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return replace(self.quote, symbol=symbol)

    def get_cash_balance(self) -> float:
        return 50_000.0

    def submit_order(self, symbol, side, order_type, quantity, price=None, *, exchange_code=None, daytime=False):
        index = len(self.submitted)
        self.submitted.append((symbol, side, order_type, quantity, price))
        if self.on_submit is not None:
            self.on_submit(index)
        if index in self.script:
            raise self.script[index]
        return SubmitAck(broker_order_id=f"B{index}")

    def cancel_order(self, broker_order_id: str, symbol: str, quantity: int) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(broker_order_id)

    def get_order_status(self, broker_order_id: str, symbol: str) -> OrderUpdate:
        if broker_order_id not in self.statuses:
            raise BrokerRejection(f"Unknown order {broker_order_id}")
        return self.statuses[broker_order_id]


@pytest.fixture
def store(tmp_path: Path) -> StrategyStore:
    return StrategyStore(tmp_path / "autotrade.db")


@pytest.fixture
def journal(tmp_path: Path) -> ExecutionJournal:
    return ExecutionJournal(tmp_path / "execution_log.jsonl")


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()
