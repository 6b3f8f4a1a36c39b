"""
Order status sync: pull broker-reported fills and cancellations into the
order trail, then expire day orders left open from an earlier market date.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone

from broker.client import BrokerClient, OrderUpdate
from journal.writer import ExecutionJournal
from store.strategy_store import StrategyStore
from strategy_core.contracts import OPEN_ORDER_STATUSES, Market, Order, OrderStatus
from strategy_core.errors import BrokerError
from strategy_core.session_clock import market_date

logger = logging.getLogger("autotrade.sync")


@dataclass
class SyncReport:
    checked: int = 0
    updated: int = 0
    filled: int = 0
    cancelled: int = 0
    expired: int = 0
    errors: list[str] = field(default_factory=list)
    unconfirmed: set[str] = field(default_factory=set)


def _changed(order: Order, update: OrderUpdate) -> bool:
    return update.status is not order.status or (update.filled_quantity or 0) != (order.filled_quantity or 0)


class OrderSynchronizer:
    def __init__(self, store: StrategyStore, broker: BrokerClient, journal: ExecutionJournal | None = None) -> None:
        self._store = store
        self._broker = broker
        self._journal = journal

    def _markets(self) -> dict[str, Market]:
        return {s.id: s.market for s in self._store.list_strategies()}

    def sync(self, *, strategy_id: str | None = None, now: datetime | None = None) -> SyncReport:
        """Reconcile every working order, then expire stale ones."""
        now = now or datetime.now(timezone.utc)
        report = SyncReport()
        for order in self._store.list_orders(strategy_id, statuses=OPEN_ORDER_STATUSES):
            if order.broker_order_id is None:
                continue
            report.checked += 1
            try:
                update = self._broker.get_order_status(order.broker_order_id, order.symbol)
            except BrokerError as exc:
                report.errors.append(f"{order.id}: {exc}")
                report.unconfirmed.add(order.id)
                logger.warning("Status check for %s failed: %s", order.broker_order_id, exc)
                continue
            if not _changed(order, update):
                continue
            self._store.update_order(
                order.id,
                status=update.status,
                filled_quantity=update.filled_quantity or None,
                filled_price=update.filled_price if update.filled_price is not None else order.filled_price,
                filled_at=update.filled_at or order.filled_at,
                error_message=update.reason,
                now=now,
            )
            report.updated += 1
            if update.status is OrderStatus.FILLED:
                report.filled += 1
            elif update.status is OrderStatus.CANCELLED:
                report.cancelled += 1
            if self._journal is not None:
                self._journal.log(
                    "INFO",
                    f"Order {order.broker_order_id} {order.status.value} -> {update.status.value}",
                    strategy_id=order.strategy_id,
                    event="order_status",
                    order_id=order.id,
                    filled_quantity=update.filled_quantity,
                    filled_price=update.filled_price,
                )
        report.expired = self.expire_stale(strategy_id=strategy_id, now=now, skip=report.unconfirmed)
        return report

    def expire_stale(
        self,
        *,
        strategy_id: str | None = None,
        now: datetime | None = None,
        skip: Collection[str] = (),
    ) -> int:
        """
        Mark orders still SUBMITTED from an earlier market date as CANCELLED.
        Orders in *skip* (status check failed this sync) are left as they are.
        """
        now = now or datetime.now(timezone.utc)
        markets = self._markets()
        expired = 0
        for order in self._store.list_orders(strategy_id, statuses=[OrderStatus.SUBMITTED]):
            if order.id in skip:
                continue
            market = markets.get(order.strategy_id, Market.FOREIGN)
            submitted_day = market_date(order.submitted_at, market)
            if submitted_day >= market_date(now, market):
                continue
            self._store.update_order(
                order.id,
                status=OrderStatus.CANCELLED,
                error_message=f"Expired: day order from {submitted_day.isoformat()}",
                now=now,
            )
            expired += 1
            if self._journal is not None:
                self._journal.log(
                    "WARNING",
                    f"Expired stale order {order.broker_order_id or order.id} from {submitted_day.isoformat()}",
                    strategy_id=order.strategy_id,
                    event="order_expired",
                    order_id=order.id,
                )
        if expired:
            logger.info("Expired %d stale order(s)", expired)
        return expired
