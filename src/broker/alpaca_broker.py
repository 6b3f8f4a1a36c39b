"""
Alpaca broker: implements BrokerClient using the alpaca-py SDK.

Order-type mapping (all limit orders):
    LIMIT -> TimeInForce.DAY
    LOO   -> TimeInForce.OPG (opening auction)
    LOC   -> TimeInForce.CLS (closing auction)

HTTP 429 / 5xx and connection errors are transient; any other API error is
a rejection. Quotes come from the latest snapshot (last trade, today's open,
previous daily close).
"""

import logging
from datetime import datetime, timezone

from broker.client import OrderUpdate, SubmitAck
from strategy_core.contracts import Holding, OrderStatus, OrderType, Quote, Side
from strategy_core.errors import BrokerError, BrokerRejection, BrokerTransientError

logger = logging.getLogger("autotrade.broker.alpaca")

_TIME_IN_FORCE = {
    OrderType.LIMIT: "DAY",
    OrderType.LOO: "OPG",
    OrderType.LOC: "CLS",
}

_STATUS_MAP = {
    "partially_filled": OrderStatus.PARTIALLY_FILLED,
    "filled": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
    "replaced": OrderStatus.CANCELLED,
    "rejected": OrderStatus.FAILED,
    "suspended": OrderStatus.FAILED,
    "stopped": OrderStatus.FAILED,
}


def _enum_value(value) -> str:
    return str(getattr(value, "value", value)).lower()


def map_order_status(value) -> OrderStatus:
    """Alpaca order status -> OrderStatus. Anything still live is SUBMITTED."""
    return _STATUS_MAP.get(_enum_value(value), OrderStatus.SUBMITTED)


def _to_float(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


class AlpacaBroker:
    """
    Trade through Alpaca's Trading API.

    API keys via constructor (typically from AppConfig, sourced from env vars).
    Pre-built clients may be passed in instead.
    """

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        *,
        paper: bool = True,
        trading_client=None,
        data_client=None,
    ) -> None:
        if trading_client is None or data_client is None:
            if not api_key or not api_secret:
                raise ValueError(
                    "Alpaca API key and secret are required. "
                    "Set APCA_API_KEY_ID and APCA_API_SECRET_KEY environment variables."
                )
            try:
                from alpaca.data.historical import StockHistoricalDataClient
                from alpaca.trading.client import TradingClient
            except ImportError:
                raise ImportError(
                    "alpaca-py is required for AlpacaBroker. "
                    "Install with: pip install 'strategy-autotrader[broker]'"
                )
            trading_client = trading_client or TradingClient(api_key, api_secret, paper=paper)
            data_client = data_client or StockHistoricalDataClient(api_key, api_secret)
        self._trading = trading_client
        self._data = data_client

    def _translate(self, exc: Exception, action: str) -> BrokerError:
        from alpaca.common.exceptions import APIError

        if isinstance(exc, APIError):
            status = getattr(exc, "status_code", None)
            if status is None or status == 429 or status >= 500:
                return BrokerTransientError(f"{action}: HTTP {status}: {exc}")
            return BrokerRejection(f"{action}: {exc}")
        if isinstance(exc, (OSError, TimeoutError)):
            return BrokerTransientError(f"{action}: {exc}")
        return BrokerRejection(f"{action}: {exc}")

    def _call(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except BrokerError:
            raise
        except Exception as exc:
            err = self._translate(exc, action)
            logger.warning("%s failed: %s", action, err)
            raise err from exc

    def get_holding(self, symbol: str) -> Holding:
        from alpaca.common.exceptions import APIError

        try:
            position = self._trading.get_open_position(symbol)
        except Exception as exc:
            if isinstance(exc, APIError) and getattr(exc, "status_code", None) == 404:
                return Holding(symbol=symbol, quantity=0, avg_cost=0.0)
            err = self._translate(exc, f"get position {symbol}")
            logger.warning("get position %s failed: %s", symbol, err)
            raise err from exc
        qty = int(_to_float(position.qty))
        if qty <= 0:
            return Holding(symbol=symbol, quantity=0, avg_cost=0.0)
        return Holding(symbol=symbol, quantity=qty, avg_cost=_to_float(position.avg_entry_price))

    def get_quote(self, symbol: str) -> Quote:
        from alpaca.data.requests import StockSnapshotRequest

        request = StockSnapshotRequest(symbol_or_symbols=symbol)
        snapshots = self._call(f"get snapshot {symbol}", self._data.get_stock_snapshot, request)
        snap = snapshots.get(symbol) if isinstance(snapshots, dict) else snapshots
        if snap is None:
            raise BrokerRejection(f"No snapshot returned for {symbol}")
        latest = getattr(snap, "latest_trade", None)
        daily = getattr(snap, "daily_bar", None)
        previous = getattr(snap, "previous_daily_bar", None)
        return Quote(
            symbol=symbol,
            current_price=_to_float(getattr(latest, "price", None)),
            previous_close=_to_float(getattr(previous, "close", None)),
            open_price=_to_float(getattr(daily, "open", None)),
        )

    def get_cash_balance(self) -> float:
        account = self._call("get account", self._trading.get_account)
        return _to_float(account.cash)

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
        from alpaca.trading.enums import OrderSide, TimeInForce
        from alpaca.trading.requests import LimitOrderRequest

        if price is None or price <= 0:
            raise BrokerRejection(f"{order_type.value} orders require a positive limit price")
        if daytime:
            logger.info("Daytime routing not offered by Alpaca; sending %s %s as a regular order", side.value, symbol)
        request = LimitOrderRequest(
            symbol=symbol,
            qty=quantity,
            side=OrderSide.BUY if side is Side.BUY else OrderSide.SELL,
            time_in_force=getattr(TimeInForce, _TIME_IN_FORCE[order_type]),
            limit_price=round(price, 2),
        )
        order = self._call(f"submit {order_type.value} {side.value} {symbol}", self._trading.submit_order, order_data=request)
        status = map_order_status(getattr(order, "status", None))
        if status is OrderStatus.FAILED:
            raise BrokerRejection(f"Order {order.id} rejected by broker")
        return SubmitAck(broker_order_id=str(order.id))

    def cancel_order(self, broker_order_id: str, symbol: str, quantity: int) -> None:
        self._call(f"cancel {broker_order_id}", self._trading.cancel_order_by_id, broker_order_id)

    def get_order_status(self, broker_order_id: str, symbol: str) -> OrderUpdate:
        order = self._call(f"get order {broker_order_id}", self._trading.get_order_by_id, broker_order_id)
        filled_at = getattr(order, "filled_at", None)
        if isinstance(filled_at, datetime) and filled_at.tzinfo is None:
            filled_at = filled_at.replace(tzinfo=timezone.utc)
        avg = getattr(order, "filled_avg_price", None)
        return OrderUpdate(
            broker_order_id=str(order.id),
            status=map_order_status(order.status),
            filled_quantity=_to_float(getattr(order, "filled_qty", None)),
            filled_price=_to_float(avg) if avg not in (None, "") else None,
            filled_at=filled_at,
        )
