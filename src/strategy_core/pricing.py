"""
Tranche planning and market price rounding.

Foreign prices round half-up to cents. Domestic prices snap to the exchange
tick table: BUY rounds down to a tick, SELL rounds up, so the limit is never
more aggressive than requested.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from strategy_core.contracts import DeclineUnit, DistributionType, Market, Side, SplitOrderParams
from strategy_core.errors import StrategyValidationError

_CENT = Decimal("0.01")

# (upper bound exclusive, tick size) in KRW
_DOMESTIC_TICKS: tuple[tuple[int, int], ...] = (
    (2_000, 1),
    (5_000, 5),
    (20_000, 10),
    (50_000, 50),
    (200_000, 100),
    (500_000, 500),
)
_DOMESTIC_TOP_TICK = 1_000


@dataclass(frozen=True)
class Tranche:
    rank: int
    price: float
    quantity: int
    cumulative: int


def domestic_tick(price: float) -> int:
    for bound, tick in _DOMESTIC_TICKS:
        if price < bound:
            return tick
    return _DOMESTIC_TOP_TICK


def round_price(price: float | Decimal, market: Market, side: Side) -> float:
    value = price if isinstance(price, Decimal) else Decimal(str(price))
    if market is Market.DOMESTIC:
        tick = Decimal(domestic_tick(float(value)))
        mode = ROUND_FLOOR if side is Side.BUY else ROUND_CEILING
        steps = (value / tick).to_integral_value(rounding=mode)
        return float(steps * tick)
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def _js_round(x: float) -> int:
    return math.floor(x + 0.5)


def tranche_sizes(total: int, count: int, distribution: DistributionType) -> list[int]:
    """Split *total* shares into *count* tranches; sizes always sum to *total*."""
    if count <= 0:
        raise StrategyValidationError("splitCount must be at least 1")
    if total <= 0:
        raise StrategyValidationError("totalAmount must be at least 1")

    if distribution is DistributionType.EQUAL:
        base = total // count
        sizes = [base] * count
        sizes[-1] += total - base * count
        return sizes

    unit = total / (count * (count + 1) / 2)
    sizes = [_js_round(unit * (i + 1)) for i in range(count)]
    sizes[-1] += total - sum(sizes)
    if distribution is DistributionType.INVERTED:
        sizes.reverse()
    return sizes


def tranche_prices(
    base_price: float,
    count: int,
    step: float,
    unit: DeclineUnit,
    side: Side,
    market: Market = Market.FOREIGN,
) -> list[float]:
    """
    First tranche sits at *base_price*; each later one steps away by *step*.

    PERCENT compounds on the running price; ABSOLUTE moves a fixed amount.
    BUY steps down, SELL steps up.
    """
    running = Decimal(str(base_price))
    delta = Decimal(str(step))
    direction = -1 if side is Side.BUY else 1
    prices: list[float] = []
    for rank in range(count):
        if rank > 0:
            if unit is DeclineUnit.PERCENT:
                running = running * (1 + direction * delta / 100)
            else:
                running = running + direction * delta
        if running <= 0:
            raise StrategyValidationError(
                f"Tranche {rank + 1} price would be {running}; reduce declineValue or splitCount"
            )
        prices.append(round_price(running, market, side))
    return prices


def plan_tranches(params: SplitOrderParams, market: Market = Market.FOREIGN) -> list[Tranche]:
    sizes = tranche_sizes(params.total_amount, params.split_count, params.distribution_type)
    prices = tranche_prices(
        params.base_price,
        params.split_count,
        params.decline_value,
        params.decline_unit,
        params.side,
        market,
    )
    tranches: list[Tranche] = []
    cumulative = 0
    for rank, (price, qty) in enumerate(zip(prices, sizes)):
        cumulative += qty
        tranches.append(Tranche(rank=rank, price=price, quantity=qty, cumulative=cumulative))
    return tranches


def return_rate(avg_cost: float, current_price: float) -> float:
    """Unrealized return in percent; 0 when there is no cost basis."""
    if avg_cost <= 0:
        return 0.0
    return (current_price - avg_cost) / avg_cost * 100


def target_price(avg_cost: float, target_return_rate: float) -> float:
    return avg_cost * (1 + target_return_rate / 100)
