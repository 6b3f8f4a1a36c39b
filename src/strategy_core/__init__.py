"""
Strategy core: pure decision logic. No I/O, no wall clock.

Session clock, FIFO P&L, tranche pricing, and the per-type decision engines.
"""

from strategy_core.contracts import (
    Decision,
    DeclineUnit,
    DistributionType,
    Holding,
    LooLocParams,
    Market,
    MarketSnapshot,
    Order,
    OrderIntent,
    OrderStatus,
    OrderType,
    Quote,
    Side,
    SplitOrderParams,
    Strategy,
    StrategyStatus,
    StrategyType,
)
from strategy_core.engine import decide
from strategy_core.session_clock import MarketSession, Session, session_at

__all__ = [
    "Decision",
    "DeclineUnit",
    "DistributionType",
    "Holding",
    "LooLocParams",
    "Market",
    "MarketSession",
    "MarketSnapshot",
    "Order",
    "OrderIntent",
    "OrderStatus",
    "OrderType",
    "Quote",
    "Session",
    "Side",
    "SplitOrderParams",
    "Strategy",
    "StrategyStatus",
    "StrategyType",
    "decide",
    "session_at",
]
