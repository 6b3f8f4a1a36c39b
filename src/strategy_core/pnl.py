"""
Realized / unrealized P&L and performance metrics.

Realized P&L uses FIFO lot matching per symbol over FILLED orders sorted by
fill time (ties broken by order id, so input order never matters). Short
selling is unsupported: a SELL beyond the tracked lots yields an
OversellWarning and the excess is dropped from matching.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from strategy_core.contracts import Holding, Order, OrderStatus, Side
from strategy_core.errors import OversellWarning

logger = logging.getLogger("autotrade.pnl")


@dataclass(frozen=True)
class Lot:
    symbol: str
    quantity: float
    price: float


@dataclass(frozen=True)
class RealizedPnL:
    amount: float
    matched_quantity: float
    open_lots: tuple[Lot, ...] = ()
    warnings: tuple[OversellWarning, ...] = ()


@dataclass(frozen=True)
class UnrealizedPnL:
    amount: float
    total_invested: float
    market_value: float
    missing_prices: tuple[str, ...] = ()


@dataclass(frozen=True)
class PerformanceMetrics:
    total_value: float
    total_invested: float
    realized_pnl: float
    unrealized_pnl: float
    return_rate: float
    trade_count: int
    cash_balance: float = 0.0
    missing_prices: tuple[str, ...] = ()
    warnings: tuple[OversellWarning, ...] = ()
    realized_by_symbol: dict[str, float] = field(default_factory=dict)


def _fill_key(order: Order) -> tuple[datetime, str]:
    ts = order.filled_at
    if ts is None:
        raise ValueError(f"Order {order.id} has no fill time")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts, order.id


def _participates(order: Order) -> bool:
    return (
        order.status is OrderStatus.FILLED
        and order.filled_quantity is not None
        and order.filled_quantity > 0
        and order.filled_price is not None
        and order.filled_at is not None
    )


def realized_pnl(orders: Iterable[Order]) -> RealizedPnL:
    """FIFO realized P&L across *orders*. Pure; never raises on oversell."""
    fills = sorted((o for o in orders if _participates(o)), key=_fill_key)
    queues: dict[str, deque[list[float]]] = {}
    amount = 0.0
    matched_total = 0.0
    warnings: list[OversellWarning] = []

    for order in fills:
        qty = float(order.filled_quantity or 0)
        price = float(order.filled_price or 0)
        lots = queues.setdefault(order.symbol, deque())

        if order.side is Side.BUY:
            lots.append([qty, price])
            continue

        remaining = qty
        while remaining > 0 and lots:
            lot = lots[0]
            matched = min(remaining, lot[0])
            amount += (price - lot[1]) * matched
            matched_total += matched
            lot[0] -= matched
            remaining -= matched
            if lot[0] <= 0:
                lots.popleft()

        if remaining > 0:
            warning = OversellWarning(
                symbol=order.symbol,
                remainder=remaining,
                sell_quantity=qty,
                order_id=order.id,
            )
            logger.warning("%s", warning)
            warnings.append(warning)

    open_lots = tuple(
        Lot(symbol=symbol, quantity=q, price=p)
        for symbol, lots in queues.items()
        for q, p in lots
    )
    return RealizedPnL(
        amount=amount,
        matched_quantity=matched_total,
        open_lots=open_lots,
        warnings=tuple(warnings),
    )


def unrealized_pnl(holdings: Iterable[Holding], prices: Mapping[str, float | None]) -> UnrealizedPnL:
    """
    Mark held quantity to *prices*. A missing or zero price falls back to the
    holding's average cost (zero contribution) and the symbol is reported.
    """
    amount = 0.0
    invested = 0.0
    market_value = 0.0
    missing: list[str] = []
    for h in holdings:
        if h.quantity <= 0:
            continue
        price = prices.get(h.symbol)
        if not price:
            missing.append(h.symbol)
            price = h.avg_cost
        amount += (price - h.avg_cost) * h.quantity
        invested += h.avg_cost * h.quantity
        market_value += price * h.quantity
    if missing:
        logger.info("No current price for %s; valued at cost", ", ".join(missing))
    return UnrealizedPnL(
        amount=amount,
        total_invested=invested,
        market_value=market_value,
        missing_prices=tuple(missing),
    )


def compute_return_rate(realized: float, unrealized: float, total_invested: float) -> float:
    if total_invested == 0:
        return 0.0
    return (realized + unrealized) / total_invested * 100


def _realized_by_symbol(orders: list[Order]) -> dict[str, float]:
    symbols = sorted({o.symbol for o in orders})
    return {s: realized_pnl(o for o in orders if o.symbol == s).amount for s in symbols}


def portfolio_metrics(
    orders: Iterable[Order],
    holdings: Iterable[Holding],
    prices: Mapping[str, float | None],
    cash_balance: float = 0.0,
) -> PerformanceMetrics:
    order_list = list(orders)
    realized = realized_pnl(order_list)
    unrealized = unrealized_pnl(holdings, prices)
    return PerformanceMetrics(
        total_value=cash_balance + unrealized.market_value,
        total_invested=unrealized.total_invested,
        realized_pnl=realized.amount,
        unrealized_pnl=unrealized.amount,
        return_rate=compute_return_rate(realized.amount, unrealized.amount, unrealized.total_invested),
        trade_count=sum(1 for o in order_list if o.status is OrderStatus.FILLED),
        cash_balance=cash_balance,
        missing_prices=unrealized.missing_prices,
        warnings=realized.warnings,
        realized_by_symbol=_realized_by_symbol(order_list),
    )


def strategy_metrics(
    orders: Iterable[Order],
    holding: Holding | None,
    current_price: float | None,
) -> PerformanceMetrics:
    """Metrics for a single strategy: its own orders plus its symbol's holding."""
    order_list = list(orders)
    realized = realized_pnl(order_list)
    held = [holding] if holding is not None else []
    prices = {holding.symbol: current_price} if holding is not None else {}
    unrealized = unrealized_pnl(held, prices)
    return PerformanceMetrics(
        total_value=unrealized.market_value,
        total_invested=unrealized.total_invested,
        realized_pnl=realized.amount,
        unrealized_pnl=unrealized.amount,
        return_rate=compute_return_rate(realized.amount, unrealized.amount, unrealized.total_invested),
        trade_count=sum(1 for o in order_list if o.status is OrderStatus.FILLED),
        missing_prices=unrealized.missing_prices,
        warnings=realized.warnings,
    )
