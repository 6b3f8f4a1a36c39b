"""
Split-order decisions: a ladder of LIMIT tranches stepping away from basePrice.

Progress is read from the broker, never counted locally. For BUY ladders the
filled quantity is the broker-reported holding; for SELL ladders it is the
sum of recorded SELL fills. Only the first unsatisfied tranche is ever
emitted, and only when no working order already covers it.

BUY ladders carry a take-profit exit: once the held position's return
reaches targetReturnRate a single SELL for the whole holding replaces any
tranche work, and a filled exit ends the strategy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from strategy_core.contracts import (
    Decision,
    Market,
    MarketSnapshot,
    Order,
    OrderIntent,
    OrderStatus,
    OrderType,
    Side,
    SplitOrderParams,
    Strategy,
    StrategyStatus,
)
from strategy_core.pricing import Tranche, plan_tranches, return_rate, round_price

logger = logging.getLogger("autotrade.engine.split_order")

_PRICE_EPS = 1e-6


def _same_price(a: float | None, b: float) -> bool:
    return a is not None and abs(a - b) < _PRICE_EPS


def _blocks_tranche(order: Order, side: Side, price: float) -> bool:
    """Working orders and terminal (non-retryable) failures hold a tranche slot."""
    if order.side is not side or order.order_type is not OrderType.LIMIT:
        return False
    if not _same_price(order.price, price):
        return False
    if order.is_open:
        return True
    return order.status is OrderStatus.FAILED and not order.retryable


def _filled_sell_quantity(orders: Sequence[Order]) -> int:
    """Shares sold so far, including fills on orders later cancelled."""
    return int(sum(o.filled_quantity or 0 for o in orders if o.side is Side.SELL))


def next_tranche(tranches: Sequence[Tranche], filled: int) -> Tranche | None:
    for t in tranches:
        if t.quantity > 0 and t.cumulative > filled:
            return t
    return None


def _is_daytime(strategy: Strategy, params: SplitOrderParams) -> bool:
    return params.is_daytime or strategy.market is Market.FOREIGN_DAYTIME


def _exchange_code(strategy: Strategy, params: SplitOrderParams) -> str | None:
    return None if strategy.market is Market.DOMESTIC else params.exchange_code


def _exit_decision(
    strategy: Strategy,
    params: SplitOrderParams,
    snapshot: MarketSnapshot,
    orders: Sequence[Order],
    rate: float,
) -> Decision:
    holding = snapshot.holding
    if any(o.side is Side.SELL and o.is_open for o in orders):
        return Decision(idle_reason="Exit SELL already working")

    price = round_price(snapshot.quote.current_price, strategy.market, Side.SELL)
    intent = OrderIntent(
        side=Side.SELL,
        order_type=OrderType.LIMIT,
        quantity=holding.quantity,
        price=price,
        reason=(
            f"Take profit: return {rate:.2f}% >= target {params.target_return_rate:g}% "
            f"on {holding.quantity} @ {holding.avg_cost:g}"
        ),
        exchange_code=_exchange_code(strategy, params),
        daytime=_is_daytime(strategy, params),
    )
    pending_buys = tuple(o for o in orders if o.side is Side.BUY and o.is_open)
    return Decision(intents=(intent,), cancellations=pending_buys)


def decide(
    strategy: Strategy,
    params: SplitOrderParams,
    snapshot: MarketSnapshot,
    orders: Sequence[Order],
    now: datetime,
) -> Decision:
    holding = snapshot.holding

    if params.side is Side.BUY:
        if any(o.side is Side.SELL and o.status is OrderStatus.FILLED for o in orders):
            return Decision(status_change=StrategyStatus.ENDED, idle_reason="Exit SELL filled; strategy complete")

        if holding.quantity > 0 and holding.avg_cost > 0:
            rate = return_rate(holding.avg_cost, snapshot.quote.current_price)
            if rate >= params.target_return_rate:
                logger.info("%s exit triggered at %.2f%%", strategy.id, rate)
                return _exit_decision(strategy, params, snapshot, orders, rate)

    tranches = plan_tranches(params, strategy.market)
    if params.side is Side.BUY:
        filled = holding.quantity
    else:
        filled = _filled_sell_quantity(orders)

    tranche = next_tranche(tranches, filled)
    if tranche is None:
        if params.side is Side.SELL:
            return Decision(status_change=StrategyStatus.ENDED, idle_reason="All SELL tranches filled")
        return Decision(idle_reason="All BUY tranches filled; waiting for exit target")

    if any(_blocks_tranche(o, params.side, tranche.price) for o in orders):
        return Decision(idle_reason=f"Tranche {tranche.rank + 1} already working @ {tranche.price:g}")

    quantity = tranche.cumulative - filled
    if params.side is Side.SELL:
        quantity = min(quantity, holding.quantity)
        if quantity <= 0:
            return Decision(idle_reason=f"No {strategy.symbol} held to sell")

    intent = OrderIntent(
        side=params.side,
        order_type=OrderType.LIMIT,
        quantity=quantity,
        price=tranche.price,
        reason=f"Tranche {tranche.rank + 1}/{len(tranches)}: {quantity} @ {tranche.price:g}",
        tranche=tranche.rank,
        exchange_code=_exchange_code(strategy, params),
        daytime=_is_daytime(strategy, params),
    )
    return Decision(intents=(intent,))
