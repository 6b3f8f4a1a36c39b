"""
Data contracts for the strategy core: Strategy, typed parameters, Order,
broker snapshots, OrderIntent and Decision.

No I/O; these are plain dataclasses. Parameter payloads are persisted as
camelCase JSON objects and converted to the typed forms here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from strategy_core.session_clock import MarketSession


DEFAULT_TARGET_RETURN_RATE = 10.0


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Market(str, Enum):
    """Where a strategy trades. FOREIGN_DAYTIME routes through the daytime venue."""

    DOMESTIC = "DOMESTIC"
    FOREIGN = "FOREIGN"
    FOREIGN_DAYTIME = "FOREIGN_DAYTIME"


class StrategyType(str, Enum):
    SPLIT_ORDER = "SPLIT_ORDER"
    LOO_LOC = "LOO_LOC"


class StrategyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ENDED = "ENDED"


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    """LIMIT is a plain day limit; LOO/LOC are limit-on-open / limit-on-close."""

    LIMIT = "LIMIT"
    LOO = "LOO"
    LOC = "LOC"


class OrderStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


OPEN_ORDER_STATUSES = frozenset({OrderStatus.SUBMITTED, OrderStatus.PARTIALLY_FILLED})


class DeclineUnit(str, Enum):
    PERCENT = "PERCENT"
    ABSOLUTE = "ABSOLUTE"


class DistributionType(str, Enum):
    """How totalAmount is apportioned across tranches."""

    EQUAL = "EQUAL"
    PYRAMID = "PYRAMID"  # size grows away from basePrice
    INVERTED = "INVERTED"  # front-loaded


# ---------------------------------------------------------------------------
# Strategy and typed parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SplitOrderParams:
    """Split-order intent plus the runtime fields mirrored from the broker."""

    base_price: float
    total_amount: int
    split_count: int
    side: Side
    decline_value: float
    decline_unit: DeclineUnit
    distribution_type: DistributionType
    target_return_rate: float = DEFAULT_TARGET_RETURN_RATE
    exchange_code: str = "NASD"
    is_daytime: bool = False
    current_avg_cost: float = 0.0
    current_qty: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "basePrice": self.base_price,
            "totalAmount": self.total_amount,
            "splitCount": self.split_count,
            "side": self.side.value,
            "declineValue": self.decline_value,
            "declineUnit": self.decline_unit.value,
            "distributionType": self.distribution_type.value,
            "targetReturnRate": self.target_return_rate,
            "exchangeCode": self.exchange_code,
            "isDaytime": self.is_daytime,
            "currentAvgCost": self.current_avg_cost,
            "currentQty": self.current_qty,
        }


@dataclass(frozen=True)
class LooLocParams:
    loo_enabled: bool
    loo_qty: int
    loc_buy_enabled: bool
    loc_buy_qty: int
    target_return_rate: float = DEFAULT_TARGET_RETURN_RATE
    exchange_code: str = "NASD"
    start_date: date | None = None
    end_date: date | None = None
    current_avg_cost: float = 0.0
    current_qty: int = 0

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "looEnabled": self.loo_enabled,
            "looQty": self.loo_qty,
            "locBuyEnabled": self.loc_buy_enabled,
            "locBuyQty": self.loc_buy_qty,
            "targetReturnRate": self.target_return_rate,
            "exchangeCode": self.exchange_code,
            "currentAvgCost": self.current_avg_cost,
            "currentQty": self.current_qty,
        }
        if self.start_date is not None:
            payload["startDate"] = self.start_date.isoformat()
        if self.end_date is not None:
            payload["endDate"] = self.end_date.isoformat()
        return payload


StrategyParams = SplitOrderParams | LooLocParams


@dataclass(frozen=True)
class Strategy:
    """Persisted strategy. ``params`` is the raw camelCase payload."""

    id: str
    owner: str
    name: str
    symbol: str
    market: Market
    type: StrategyType
    status: StrategyStatus
    params: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    start_date: date | None = None
    end_date: date | None = None
    last_executed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Order:
    """One submission attempt. Append-only: status moves, rows never vanish."""

    id: str
    strategy_id: str
    symbol: str
    side: Side
    order_type: OrderType
    quantity: int
    price: float | None
    status: OrderStatus
    submitted_at: datetime
    broker_order_id: str | None = None
    filled_quantity: float | None = None
    filled_price: float | None = None
    filled_at: datetime | None = None
    error_message: str | None = None
    retryable: bool = False
    updated_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ORDER_STATUSES


# ---------------------------------------------------------------------------
# Broker snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Holding:
    symbol: str
    quantity: int
    avg_cost: float


@dataclass(frozen=True)
class Quote:
    symbol: str
    current_price: float
    previous_close: float
    open_price: float = 0.0


@dataclass(frozen=True)
class MarketSnapshot:
    holding: Holding
    quote: Quote
    session: MarketSession


# ---------------------------------------------------------------------------
# Engine output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderIntent:
    side: Side
    order_type: OrderType
    quantity: int
    price: float
    reason: str
    tranche: int | None = None
    exchange_code: str | None = None
    daytime: bool = False


@dataclass(frozen=True)
class Decision:
    """
    What one engine pass wants done.

    ``cancellations`` run before ``intents``. ``runtime_patch`` holds the
    camelCase fields to merge into the stored payload. ``idle_reason`` is set
    when nothing is due for a normal reason (session, date window, no signal).
    """

    intents: tuple[OrderIntent, ...] = ()
    cancellations: tuple[Order, ...] = ()
    runtime_patch: dict[str, Any] = field(default_factory=dict)
    status_change: StrategyStatus | None = None
    idle_reason: str | None = None
    notes: tuple[str, ...] = ()

    @property
    def has_work(self) -> bool:
        return bool(self.intents or self.cancellations)


def runtime_patch_from(holding: Holding) -> dict[str, Any]:
    """Runtime fields are always copied from the broker, never accumulated."""
    return {"currentAvgCost": holding.avg_cost, "currentQty": holding.quantity}
