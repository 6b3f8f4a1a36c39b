"""
LOO/LOC decisions: session-gated opportunistic entries plus a full exit.

  exit   held return >= target  -> SELL LOC (whole position) at the target price
  LOO    pre-market             -> BUY LOO looQty at previous close (gap-down fill)
  LOC    regular, after grace   -> BUY LOC locBuyQty at the reference price when
                                   trading below it (avg cost, else previous close)

An exit condition suppresses both buys for the cycle. Each trigger fires at
most once per market day; cancelled orders and retryable failures do not
count as "placed".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from strategy_core.contracts import (
    Decision,
    LooLocParams,
    MarketSnapshot,
    Order,
    OrderIntent,
    OrderStatus,
    OrderType,
    Side,
    Strategy,
)
from strategy_core.pricing import return_rate, round_price, target_price
from strategy_core.session_clock import market_date

logger = logging.getLogger("autotrade.engine.loo_loc")


def placed_today(orders: Sequence[Order], strategy: Strategy, now: datetime) -> list[Order]:
    today = market_date(now, strategy.market)
    placed = []
    for o in orders:
        if market_date(o.submitted_at, strategy.market) != today:
            continue
        if o.status is OrderStatus.CANCELLED:
            continue
        if o.status is OrderStatus.FAILED and o.retryable:
            continue
        placed.append(o)
    return placed


def _has(orders: Sequence[Order], side: Side, order_type: OrderType | None = None) -> bool:
    return any(o.side is side and (order_type is None or o.order_type is order_type) for o in orders)


def decide(
    strategy: Strategy,
    params: LooLocParams,
    snapshot: MarketSnapshot,
    orders: Sequence[Order],
    now: datetime,
) -> Decision:
    holding = snapshot.holding
    quote = snapshot.quote
    session = snapshot.session
    today_orders = placed_today(orders, strategy, now)
    notes: list[str] = []

    if holding.quantity > 0 and holding.avg_cost > 0:
        rate = return_rate(holding.avg_cost, quote.current_price)
        if rate >= params.target_return_rate:
            if _has(today_orders, Side.SELL):
                return Decision(idle_reason="Exit SELL already placed today")
            if not session.can_submit_loc:
                return Decision(idle_reason=f"Exit due ({rate:.2f}%) but LOC window closed ({session.session.value})")
            price = round_price(target_price(holding.avg_cost, params.target_return_rate), strategy.market, Side.SELL)
            logger.info("%s exit triggered at %.2f%%", strategy.id, rate)
            return Decision(
                intents=(
                    OrderIntent(
                        side=Side.SELL,
                        order_type=OrderType.LOC,
                        quantity=holding.quantity,
                        price=price,
                        reason=f"Take profit: return {rate:.2f}% >= target {params.target_return_rate:g}%",
                        exchange_code=params.exchange_code,
                    ),
                ),
            )

    intents: list[OrderIntent] = []

    if params.loo_enabled and session.can_submit_loo and not _has(today_orders, Side.BUY, OrderType.LOO):
        if quote.previous_close > 0:
            intents.append(
                OrderIntent(
                    side=Side.BUY,
                    order_type=OrderType.LOO,
                    quantity=params.loo_qty,
                    price=round_price(quote.previous_close, strategy.market, Side.BUY),
                    reason=f"LOO buy at previous close {quote.previous_close:g} (fills on a gap-down open)",
                    exchange_code=params.exchange_code,
                )
            )
        else:
            notes.append("LOO skipped: previous close unavailable")

    if params.loc_buy_enabled and session.can_submit_loc and not _has(today_orders, Side.BUY, OrderType.LOC):
        if holding.quantity > 0 and holding.avg_cost > 0:
            reference, label = holding.avg_cost, "average cost"
        else:
            reference, label = quote.previous_close, "previous close"
        if reference <= 0 or quote.current_price <= 0:
            notes.append("LOC buy skipped: price unavailable")
        elif quote.current_price < reference:
            intents.append(
                OrderIntent(
                    side=Side.BUY,
                    order_type=OrderType.LOC,
                    quantity=params.loc_buy_qty,
                    price=round_price(reference, strategy.market, Side.BUY),
                    reason=f"LOC buy: {quote.current_price:g} below {label} {reference:g}",
                    exchange_code=params.exchange_code,
                )
            )
        else:
            notes.append(f"LOC buy skipped: {quote.current_price:g} not below {label} {reference:g}")

    if intents:
        return Decision(intents=tuple(intents), notes=tuple(notes))

    if not session.can_submit_loo and not session.can_submit_loc:
        reason = f"No LOO/LOC window in session {session.session.value}"
    else:
        reason = "No trigger this cycle"
    return Decision(idle_reason=reason, notes=tuple(notes))
