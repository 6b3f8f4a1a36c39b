"""
Decision engine entry point: date window, stale-order cancellation, then
dispatch on the parameter type. Pure: the instant is passed in and every
Decision carries the runtime patch copied from the holding snapshot.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import date, datetime

from strategy_core import loo_loc, split_order
from strategy_core.contracts import (
    Decision,
    LooLocParams,
    MarketSnapshot,
    Order,
    SplitOrderParams,
    Strategy,
    StrategyParams,
    StrategyStatus,
    StrategyType,
    runtime_patch_from,
)
from strategy_core.errors import StrategyValidationError
from strategy_core.session_clock import market_date


def stale_orders(strategy: Strategy, orders: Sequence[Order]) -> list[Order]:
    """Working orders placed before the strategy's last edit."""
    return [o for o in orders if o.is_open and o.submitted_at < strategy.updated_at]


def date_window(strategy: Strategy, params: StrategyParams) -> tuple[date | None, date | None]:
    start = getattr(params, "start_date", None) or strategy.start_date
    end = getattr(params, "end_date", None) or strategy.end_date
    return start, end


def decide(
    strategy: Strategy,
    params: StrategyParams,
    snapshot: MarketSnapshot,
    orders: Sequence[Order],
    now: datetime,
) -> Decision:
    expected = SplitOrderParams if strategy.type is StrategyType.SPLIT_ORDER else LooLocParams
    if not isinstance(params, expected):
        raise StrategyValidationError(
            f"Strategy {strategy.id} is {strategy.type.value} but params are {type(params).__name__}"
        )

    patch = runtime_patch_from(snapshot.holding)
    stale = stale_orders(strategy, orders)
    stale_ids = {o.id for o in stale}
    live = [o for o in orders if o.id not in stale_ids]

    today = market_date(now, strategy.market)
    start, end = date_window(strategy, params)
    if end is not None and today > end:
        return Decision(
            cancellations=tuple(stale),
            runtime_patch=patch,
            status_change=StrategyStatus.ENDED,
            idle_reason=f"End date {end.isoformat()} passed",
        )
    if start is not None and today < start:
        return Decision(
            cancellations=tuple(stale),
            runtime_patch=patch,
            idle_reason=f"Starts on {start.isoformat()}",
        )

    if isinstance(params, SplitOrderParams):
        decision = split_order.decide(strategy, params, snapshot, live, now)
    else:
        decision = loo_loc.decide(strategy, params, snapshot, live, now)

    seen = set(stale_ids)
    extra = tuple(o for o in decision.cancellations if o.id not in seen)
    return replace(decision, cancellations=tuple(stale) + extra, runtime_patch=patch)
