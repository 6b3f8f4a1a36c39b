"""
Paper broker: simulated brokerage with restart-safe state (SQLite).

Quotes are set explicitly (set_quote); working limit orders fill when
match_orders() sees the quote cross their limit. Long-only: a SELL larger
than the unreserved position is rejected.
"""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from broker.client import OrderUpdate, SubmitAck
from strategy_core.contracts import Holding, OrderStatus, OrderType, Quote, Side
from strategy_core.errors import BrokerRejection

logger = logging.getLogger("autotrade.broker.paper")

_WORKING = (OrderStatus.SUBMITTED.value, OrderStatus.PARTIALLY_FILLED.value)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class PaperBroker:
    """
    Single writer (one process). Positions, cash, quotes and orders live in
    one SQLite file so a restart picks up where it left off.
    """

    def __init__(self, state_path: str | Path, *, initial_cash: float = 100_000.0) -> None:
        self._path = Path(state_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initial_cash = initial_cash
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    order_type TEXT NOT NULL,
                    qty INTEGER NOT NULL,
                    limit_price REAL,
                    status TEXT NOT NULL,
                    filled_qty REAL NOT NULL DEFAULT 0,
                    filled_price REAL,
                    ts_utc TEXT NOT NULL,
                    filled_at TEXT,
                    exchange_code TEXT,
                    daytime INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS positions (
                    symbol TEXT PRIMARY KEY,
                    qty INTEGER NOT NULL,
                    avg_price REAL NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS quotes (
                    symbol TEXT PRIMARY KEY,
                    current_price REAL NOT NULL,
                    previous_close REAL NOT NULL,
                    open_price REAL NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS cash (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    balance REAL NOT NULL
                )
                """
            )
            c.execute("INSERT OR IGNORE INTO cash (id, balance) VALUES (1, ?)", (self._initial_cash,))

    # ---------- market data ----------

    def set_quote(
        self,
        symbol: str,
        current_price: float,
        previous_close: float | None = None,
        open_price: float = 0.0,
    ) -> None:
        ts = datetime.now(timezone.utc).isoformat()
        with self._conn() as c:
            c.execute(
                """INSERT OR REPLACE INTO quotes (symbol, current_price, previous_close, open_price, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (symbol, current_price, previous_close if previous_close is not None else current_price, open_price, ts),
            )

    def get_quote(self, symbol: str) -> Quote:
        with self._conn() as c:
            row = c.execute(
                "SELECT current_price, previous_close, open_price FROM quotes WHERE symbol = ?", (symbol,)
            ).fetchone()
        if not row:
            raise BrokerRejection(f"No quote available for {symbol}")
        return Quote(symbol=symbol, current_price=row[0], previous_close=row[1], open_price=row[2])

    # ---------- account ----------

    def get_cash_balance(self) -> float:
        with self._conn() as c:
            row = c.execute("SELECT balance FROM cash WHERE id = 1").fetchone()
            return float(row[0]) if row else self._initial_cash

    def get_holding(self, symbol: str) -> Holding:
        with self._conn() as c:
            row = c.execute("SELECT qty, avg_price FROM positions WHERE symbol = ?", (symbol,)).fetchone()
        if not row or row[0] == 0:
            return Holding(symbol=symbol, quantity=0, avg_cost=0.0)
        return Holding(symbol=symbol, quantity=int(row[0]), avg_cost=float(row[1]))

    def list_holdings(self) -> list[Holding]:
        with self._conn() as c:
            rows = c.execute("SELECT symbol, qty, avg_price FROM positions WHERE qty > 0 ORDER BY symbol").fetchall()
        return [Holding(symbol=r[0], quantity=int(r[1]), avg_cost=float(r[2])) for r in rows]

    # ---------- orders ----------

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
        if quantity <= 0:
            raise BrokerRejection(f"Invalid quantity {quantity}")
        if price is None or price <= 0:
            raise BrokerRejection(f"{order_type.value} orders require a positive limit price")

        with self._conn() as c:
            if side is Side.SELL:
                pos = c.execute("SELECT qty FROM positions WHERE symbol = ?", (symbol,)).fetchone()
                held = int(pos[0]) if pos else 0
                reserved = c.execute(
                    f"SELECT COALESCE(SUM(qty - filled_qty), 0) FROM orders WHERE symbol = ? AND side = ? AND status IN ({','.join('?' * len(_WORKING))})",
                    (symbol, Side.SELL.value, *_WORKING),
                ).fetchone()[0]
                if quantity > held - reserved:
                    raise BrokerRejection(
                        f"Insufficient position: sell {quantity}, available {held - reserved} (short selling not supported)"
                    )
            else:
                cash = c.execute("SELECT balance FROM cash WHERE id = 1").fetchone()[0]
                if price * quantity > cash:
                    raise BrokerRejection(f"Insufficient cash: need {price * quantity:.2f}, have {cash:.2f}")

            order_id = str(uuid.uuid4())
            ts = datetime.now(timezone.utc).isoformat()
            c.execute(
                """INSERT INTO orders (id, symbol, side, order_type, qty, limit_price, status, ts_utc, exchange_code, daytime)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    order_id,
                    symbol,
                    side.value,
                    order_type.value,
                    quantity,
                    price,
                    OrderStatus.SUBMITTED.value,
                    ts,
                    exchange_code,
                    int(daytime),
                ),
            )
        logger.info("Paper %s %s %s %d @ %.4f -> %s", order_type.value, side.value, symbol, quantity, price, order_id)
        return SubmitAck(broker_order_id=order_id)

    def cancel_order(self, broker_order_id: str, symbol: str, quantity: int) -> None:
        with self._conn() as c:
            row = c.execute("SELECT status FROM orders WHERE id = ?", (broker_order_id,)).fetchone()
            if not row:
                raise BrokerRejection(f"Unknown order {broker_order_id}")
            if row[0] not in _WORKING:
                raise BrokerRejection(f"Order {broker_order_id} is already {row[0]}")
            c.execute("UPDATE orders SET status = ? WHERE id = ?", (OrderStatus.CANCELLED.value, broker_order_id))

    def get_order_status(self, broker_order_id: str, symbol: str) -> OrderUpdate:
        with self._conn() as c:
            row = c.execute(
                "SELECT id, status, filled_qty, filled_price, filled_at FROM orders WHERE id = ?",
                (broker_order_id,),
            ).fetchone()
        if not row:
            raise BrokerRejection(f"Unknown order {broker_order_id}")
        return OrderUpdate(
            broker_order_id=row[0],
            status=OrderStatus(row[1]),
            filled_quantity=float(row[2]),
            filled_price=row[3],
            filled_at=_parse_ts(row[4]),
        )

    def _fill_price(self, side: Side, order_type: OrderType, limit: float, quote: Quote) -> float | None:
        if order_type is OrderType.LOO:
            reference = quote.open_price
        else:
            reference = quote.current_price
        if reference <= 0:
            return None
        if side is Side.BUY and reference <= limit:
            return reference
        if side is Side.SELL and reference >= limit:
            return reference
        return None

    def match_orders(self, now: datetime | None = None) -> list[OrderUpdate]:
        """Fill every working order whose limit the current quote crosses."""
        ts = _utc(now or datetime.now(timezone.utc)).isoformat()
        filled: list[OrderUpdate] = []
        with self._conn() as c:
            rows = c.execute(
                f"SELECT id, symbol, side, order_type, qty, limit_price FROM orders WHERE status IN ({','.join('?' * len(_WORKING))}) ORDER BY ts_utc",
                _WORKING,
            ).fetchall()
            for order_id, symbol, side_s, type_s, qty, limit in rows:
                q = c.execute(
                    "SELECT current_price, previous_close, open_price FROM quotes WHERE symbol = ?", (symbol,)
                ).fetchone()
                if not q:
                    continue
                quote = Quote(symbol=symbol, current_price=q[0], previous_close=q[1], open_price=q[2])
                side = Side(side_s)
                price = self._fill_price(side, OrderType(type_s), limit, quote)
                if price is None:
                    continue
                self._apply_fill(c, symbol, side, qty, price, ts)
                c.execute(
                    "UPDATE orders SET status = ?, filled_qty = ?, filled_price = ?, filled_at = ? WHERE id = ?",
                    (OrderStatus.FILLED.value, qty, price, ts, order_id),
                )
                filled.append(
                    OrderUpdate(
                        broker_order_id=order_id,
                        status=OrderStatus.FILLED,
                        filled_quantity=float(qty),
                        filled_price=price,
                        filled_at=_parse_ts(ts),
                    )
                )
        return filled

    def _apply_fill(self, c: sqlite3.Connection, symbol: str, side: Side, qty: int, price: float, ts: str) -> None:
        row = c.execute("SELECT qty, avg_price FROM positions WHERE symbol = ?", (symbol,)).fetchone()
        held, avg = (int(row[0]), float(row[1])) if row else (0, 0.0)
        if side is Side.BUY:
            new_qty = held + qty
            new_avg = (avg * held + price * qty) / new_qty
            c.execute("UPDATE cash SET balance = balance - ?", (price * qty,))
        else:
            new_qty = held - qty
            new_avg = avg if new_qty > 0 else 0.0
            c.execute("UPDATE cash SET balance = balance + ?", (price * qty,))
        c.execute(
            "INSERT OR REPLACE INTO positions (symbol, qty, avg_price, updated_at) VALUES (?, ?, ?, ?)",
            (symbol, new_qty, new_avg, ts),
        )
