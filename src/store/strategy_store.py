"""
Strategy store: strategies and their order audit trail (SQLite).

Strategy rows are mutated by user edits (which bump updated_at) and by the
execution coordinator (runtime params, status, last_executed_at; updated_at
left alone so working orders are not mistaken for stale ones). Order rows
are append-only: status transitions update them, nothing deletes them.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from strategy_core.contracts import (
    Market,
    Order,
    OrderStatus,
    OrderType,
    Side,
    Strategy,
    StrategyStatus,
    StrategyType,
)
from strategy_core.errors import StrategyNotFoundError

_ORDER_COLUMNS = (
    "id, strategy_id, symbol, side, order_type, quantity, price, status, submitted_at, "
    "broker_order_id, filled_quantity, filled_price, filled_at, error_message, retryable, updated_at"
)
_STRATEGY_COLUMNS = (
    "id, owner, name, symbol, market, type, status, params, created_at, updated_at, "
    "start_date, end_date, last_executed_at"
)
_MUTABLE_ORDER_FIELDS = frozenset(
    {
        "status",
        "broker_order_id",
        "filled_quantity",
        "filled_price",
        "filled_at",
        "error_message",
        "retryable",
    }
)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _iso(ts: datetime | None) -> str | None:
    return _utc(ts).isoformat() if ts is not None else None


def _ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return _utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _iso(value)
    if isinstance(value, bool):
        return int(value)
    if hasattr(value, "value"):
        return value.value
    return value


def _row_to_strategy(r: tuple) -> Strategy:
    return Strategy(
        id=r[0],
        owner=r[1],
        name=r[2],
        symbol=r[3],
        market=Market(r[4]),
        type=StrategyType(r[5]),
        status=StrategyStatus(r[6]),
        params=json.loads(r[7]),
        created_at=_ts(r[8]),
        updated_at=_ts(r[9]),
        start_date=_date(r[10]),
        end_date=_date(r[11]),
        last_executed_at=_ts(r[12]),
    )


def _row_to_order(r: tuple) -> Order:
    return Order(
        id=r[0],
        strategy_id=r[1],
        symbol=r[2],
        side=Side(r[3]),
        order_type=OrderType(r[4]),
        quantity=int(r[5]),
        price=r[6],
        status=OrderStatus(r[7]),
        submitted_at=_ts(r[8]),
        broker_order_id=r[9],
        filled_quantity=r[10],
        filled_price=r[11],
        filled_at=_ts(r[12]),
        error_message=r[13],
        retryable=bool(r[14]),
        updated_at=_ts(r[15]),
    )


class StrategyStore:
    """Strategy and order persistence. One connection per operation."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS strategies (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    name TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    market TEXT NOT NULL,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    params TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    start_date TEXT,
                    end_date TEXT,
                    last_executed_at TEXT
                )
                """
            )
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    strategy_id TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    order_type TEXT NOT NULL,
                    quantity INTEGER NOT NULL,
                    price REAL,
                    status TEXT NOT NULL,
                    submitted_at TEXT NOT NULL,
                    broker_order_id TEXT,
                    filled_quantity REAL,
                    filled_price REAL,
                    filled_at TEXT,
                    error_message TEXT,
                    retryable INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT
                )
                """
            )
            c.execute("CREATE INDEX IF NOT EXISTS idx_orders_strategy ON orders (strategy_id, submitted_at)")

    # ---------- strategies ----------

    def create_strategy(
        self,
        *,
        owner: str,
        name: str,
        symbol: str,
        market: Market,
        type: StrategyType,
        params: dict[str, Any],
        start_date: date | None = None,
        end_date: date | None = None,
        status: StrategyStatus = StrategyStatus.ACTIVE,
        now: datetime | None = None,
    ) -> Strategy:
        ts = _iso(now or datetime.now(timezone.utc))
        strategy_id = str(uuid.uuid4())
        with self._conn() as c:
            c.execute(
                f"INSERT INTO strategies ({_STRATEGY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    strategy_id,
                    owner,
                    name,
                    symbol.upper(),
                    market.value,
                    type.value,
                    status.value,
                    json.dumps(params),
                    ts,
                    ts,
                    start_date.isoformat() if start_date else None,
                    end_date.isoformat() if end_date else None,
                    None,
                ),
            )
        return self.get_strategy(strategy_id)

    def get_strategy(self, strategy_id: str) -> Strategy:
        with self._conn() as c:
            row = c.execute(f"SELECT {_STRATEGY_COLUMNS} FROM strategies WHERE id = ?", (strategy_id,)).fetchone()
        if not row:
            raise StrategyNotFoundError(f"Strategy not found: {strategy_id}")
        return _row_to_strategy(row)

    def list_strategies(
        self,
        *,
        status: StrategyStatus | None = None,
        owner: str | None = None,
    ) -> list[Strategy]:
        clauses, args = [], []
        if status is not None:
            clauses.append("status = ?")
            args.append(status.value)
        if owner is not None:
            clauses.append("owner = ?")
            args.append(owner)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._conn() as c:
            rows = c.execute(f"SELECT {_STRATEGY_COLUMNS} FROM strategies{where} ORDER BY created_at", args).fetchall()
        return [_row_to_strategy(r) for r in rows]

    def _require(self, c: sqlite3.Connection, strategy_id: str) -> None:
        if not c.execute("SELECT 1 FROM strategies WHERE id = ?", (strategy_id,)).fetchone():
            raise StrategyNotFoundError(f"Strategy not found: {strategy_id}")

    def update_params(self, strategy_id: str, params: dict[str, Any], *, now: datetime | None = None) -> Strategy:
        """User edit of the parameter payload."""
        with self._conn() as c:
            self._require(c, strategy_id)
            c.execute(
                "UPDATE strategies SET params = ?, updated_at = ? WHERE id = ?",
                (json.dumps(params), _iso(now or datetime.now(timezone.utc)), strategy_id),
            )
        return self.get_strategy(strategy_id)

    def set_status(self, strategy_id: str, status: StrategyStatus, *, now: datetime | None = None) -> Strategy:
        """User edit of the status."""
        with self._conn() as c:
            self._require(c, strategy_id)
            c.execute(
                "UPDATE strategies SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, _iso(now or datetime.now(timezone.utc)), strategy_id),
            )
        return self.get_strategy(strategy_id)

    def record_execution(
        self,
        strategy_id: str,
        *,
        runtime_patch: dict[str, Any],
        executed_at: datetime,
        status: StrategyStatus | None = None,
    ) -> Strategy:
        """Merge the runtime patch, apply a status change, stamp last_executed_at."""
        with self._conn() as c:
            row = c.execute("SELECT params, status FROM strategies WHERE id = ?", (strategy_id,)).fetchone()
            if not row:
                raise StrategyNotFoundError(f"Strategy not found: {strategy_id}")
            params = {**json.loads(row[0]), **runtime_patch}
            c.execute(
                "UPDATE strategies SET params = ?, status = ?, last_executed_at = ? WHERE id = ?",
                (json.dumps(params), (status.value if status else row[1]), _iso(executed_at), strategy_id),
            )
        return self.get_strategy(strategy_id)

    def delete_strategy(self, strategy_id: str) -> None:
        """Remove the strategy row. Its orders stay as audit trail."""
        with self._conn() as c:
            self._require(c, strategy_id)
            c.execute("DELETE FROM strategies WHERE id = ?", (strategy_id,))

    # ---------- orders ----------

    def insert_order(self, order: Order) -> Order:
        with self._conn() as c:
            c.execute(
                f"INSERT INTO orders ({_ORDER_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    order.id,
                    order.strategy_id,
                    order.symbol,
                    order.side.value,
                    order.order_type.value,
                    order.quantity,
                    order.price,
                    order.status.value,
                    _iso(order.submitted_at),
                    order.broker_order_id,
                    order.filled_quantity,
                    order.filled_price,
                    _iso(order.filled_at),
                    order.error_message,
                    int(order.retryable),
                    _iso(order.updated_at or order.submitted_at),
                ),
            )
        return order

    def update_order(self, order_id: str, *, now: datetime | None = None, **fields: Any) -> Order:
        unknown = set(fields) - _MUTABLE_ORDER_FIELDS
        if unknown:
            raise ValueError(f"Order fields not updatable: {sorted(unknown)}")
        assignments = ", ".join(f"{k} = ?" for k in fields)
        args = [_db_value(v) for v in fields.values()]
        ts = _iso(now or datetime.now(timezone.utc))
        with self._conn() as c:
            if not c.execute("SELECT 1 FROM orders WHERE id = ?", (order_id,)).fetchone():
                raise LookupError(f"Order not found: {order_id}")
            sets = f"{assignments}, updated_at = ?" if assignments else "updated_at = ?"
            c.execute(f"UPDATE orders SET {sets} WHERE id = ?", (*args, ts, order_id))
        return self.get_order(order_id)

    def get_order(self, order_id: str) -> Order:
        with self._conn() as c:
            row = c.execute(f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ?", (order_id,)).fetchone()
        if not row:
            raise LookupError(f"Order not found: {order_id}")
        return _row_to_order(row)

    def list_orders(
        self,
        strategy_id: str | None = None,
        *,
        statuses: Iterable[OrderStatus] | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Orders oldest first."""
        clauses, args = [], []
        if strategy_id is not None:
            clauses.append("strategy_id = ?")
            args.append(strategy_id)
        if statuses is not None:
            values = [s.value for s in statuses]
            clauses.append(f"status IN ({','.join('?' * len(values))})")
            args.extend(values)
        if since is not None:
            clauses.append("submitted_at >= ?")
            args.append(_iso(since))
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT {_ORDER_COLUMNS} FROM orders{where} ORDER BY submitted_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            args.append(limit)
        with self._conn() as c:
            rows = c.execute(sql, args).fetchall()
        return [_row_to_order(r) for r in reversed(rows)]


def new_order_id() -> str:
    return str(uuid.uuid4())
