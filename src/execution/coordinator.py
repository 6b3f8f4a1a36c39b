"""
Execution coordinator: one pass for one strategy.

    snapshot (holding, quote, session) -> decide -> cancel stale -> submit intents

Intents go to the broker one at a time. A rejection fails only that order;
a transient error or an exhausted time budget stops the batch, leaves the
strategy's runtime state untouched and marks the retryable order so the
next cycle may re-emit it. Runs of the same strategy never overlap.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

from broker.client import BrokerClient
from config.strategy_params import params_for
from execution.models import (
    CancellationOutcome,
    ExecutionResult,
    ExecutionStatus,
    IntentOutcome,
    IntentStatus,
)
from journal.writer import ExecutionJournal
from store.strategy_store import StrategyStore, new_order_id
from strategy_core.contracts import (
    MarketSnapshot,
    Order,
    OrderIntent,
    OrderStatus,
    Strategy,
    StrategyStatus,
    StrategyType,
)
from strategy_core.engine import decide
from strategy_core.errors import (
    BrokerError,
    BrokerRejection,
    BrokerTransientError,
    ExecutionTimeout,
    StrategyValidationError,
)
from strategy_core.session_clock import session_at

logger = logging.getLogger("autotrade.coordinator")


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class Deadline:
    """Broker time budget for one pass, checked around every broker call."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._seconds = seconds
        self._clock = clock
        self._end = clock() + seconds

    def check(self, step: str) -> None:
        if self._clock() >= self._end:
            raise ExecutionTimeout(f"Timed out after {self._seconds:g}s at {step}")


class StrategyLocks:
    """Single-flight guard keyed by strategy id. Never waits."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, strategy_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(strategy_id, threading.Lock())

    @contextmanager
    def hold(self, strategy_id: str) -> Iterator[bool]:
        lock = self._lock_for(strategy_id)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()


class ExecutionCoordinator:
    def __init__(
        self,
        store: StrategyStore,
        broker: BrokerClient,
        journal: ExecutionJournal,
        *,
        timeout_seconds: float = 10.0,
        min_interval_minutes: int = 10,
        clock: Callable[[], float] = time.monotonic,
        locks: StrategyLocks | None = None,
        schema_dir: Path | None = None,
    ) -> None:
        self._store = store
        self._broker = broker
        self._journal = journal
        self._timeout = timeout_seconds
        self._min_interval = timedelta(minutes=min_interval_minutes)
        self._clock = clock
        self._locks = locks or StrategyLocks()
        self._schema_dir = schema_dir

    def execute(
        self,
        strategy_id: str,
        *,
        now: datetime | None = None,
        timeout: float | None = None,
        force: bool = False,
    ) -> ExecutionResult:
        """
        Run one pass. StrategyNotFoundError propagates; every other failure is
        reported in the returned result. *force* bypasses the split-order
        minimum re-execution interval.
        """
        now = _utc(now or datetime.now(timezone.utc))
        with self._locks.hold(strategy_id) as acquired:
            if not acquired:
                logger.info("Strategy %s already running; skipped", strategy_id)
                return ExecutionResult(
                    strategy_id=strategy_id,
                    status=ExecutionStatus.SKIPPED,
                    started_at=now,
                    idle_reason="Execution already in progress",
                )
            return self._execute(strategy_id, now, self._timeout if timeout is None else timeout, force)

    # ------------------------------------------------------------------

    def _fail(self, strategy: Strategy, now: datetime, error: str, **extra) -> ExecutionResult:
        logger.error("Strategy %s failed: %s", strategy.id, error)
        self._journal.cycle_complete(strategy.id, ExecutionStatus.FAILED.value, f"Execution failed: {error}", error=error)
        return ExecutionResult(
            strategy_id=strategy.id,
            status=ExecutionStatus.FAILED,
            started_at=now,
            error=error,
            **extra,
        )

    def _execute(self, strategy_id: str, now: datetime, timeout: float, force: bool) -> ExecutionResult:
        strategy = self._store.get_strategy(strategy_id)
        if strategy.status is not StrategyStatus.ACTIVE:
            return ExecutionResult(
                strategy_id=strategy_id,
                status=ExecutionStatus.SKIPPED,
                started_at=now,
                idle_reason=f"Strategy is {strategy.status.value}",
            )
        if (
            not force
            and strategy.type is StrategyType.SPLIT_ORDER
            and strategy.last_executed_at is not None
            and now - strategy.last_executed_at < self._min_interval
        ):
            minutes = (now - strategy.last_executed_at).total_seconds() / 60
            return ExecutionResult(
                strategy_id=strategy_id,
                status=ExecutionStatus.SKIPPED,
                started_at=now,
                idle_reason=f"Last run {minutes:.1f} min ago (minimum {self._min_interval.total_seconds() / 60:g})",
            )

        try:
            params = params_for(strategy, schema_dir=self._schema_dir)
        except StrategyValidationError as exc:
            return self._fail(strategy, now, str(exc))

        deadline = Deadline(timeout, self._clock)
        session = session_at(now)
        try:
            deadline.check("holding fetch")
            holding = self._broker.get_holding(strategy.symbol)
            deadline.check("quote fetch")
            quote = self._broker.get_quote(strategy.symbol)
            deadline.check("snapshot")
        except BrokerError as exc:
            return self._fail(strategy, now, f"Snapshot unavailable: {exc}", session=session.session.value)

        snapshot = MarketSnapshot(holding=holding, quote=quote, session=session)
        orders = self._store.list_orders(strategy.id)
        try:
            decision = decide(strategy, params, snapshot, orders, now)
        except StrategyValidationError as exc:
            return self._fail(strategy, now, str(exc), session=session.session.value)

        self._journal.cycle_start(
            strategy.id,
            strategy.symbol,
            session.session.value,
            holding=holding,
            quote=quote,
            intents=len(decision.intents),
            cancellations=len(decision.cancellations),
        )

        fatal: BrokerTransientError | None = None
        cancellations: list[CancellationOutcome] = []
        for order in decision.cancellations:
            try:
                cancellations.append(self._cancel(strategy, order, deadline))
            except BrokerTransientError as exc:
                fatal = exc
                break

        outcomes: list[IntentOutcome] = []
        for intent in decision.intents:
            if fatal is not None:
                outcomes.append(IntentOutcome(intent=intent, status=IntentStatus.NOT_ATTEMPTED))
                continue
            outcome, fatal = self._submit(strategy, intent, deadline, now)
            outcomes.append(outcome)

        base = dict(
            strategy_id=strategy.id,
            started_at=now,
            outcomes=tuple(outcomes),
            cancellations=tuple(cancellations),
            session=session.session.value,
            notes=decision.notes,
        )
        if fatal is not None:
            result = ExecutionResult(status=ExecutionStatus.FAILED, error=str(fatal), **base)
            self._journal.cycle_complete(
                strategy.id,
                result.status.value,
                f"Batch aborted, runtime state not saved: {fatal}",
                error=str(fatal),
                submitted=len(result.submitted),
                failed=len(result.failed),
            )
            logger.warning("Strategy %s batch aborted: %s", strategy.id, fatal)
            return result

        rejected = any(o.status is IntentStatus.REJECTED for o in outcomes) or any(not c.cancelled for c in cancellations)
        if not decision.has_work:
            status = ExecutionStatus.IDLE
        elif rejected:
            status = ExecutionStatus.PARTIAL
        else:
            status = ExecutionStatus.COMPLETED

        self._store.record_execution(
            strategy.id,
            runtime_patch=decision.runtime_patch,
            executed_at=now,
            status=decision.status_change,
        )
        result = ExecutionResult(
            status=status,
            state_persisted=True,
            status_change=decision.status_change,
            idle_reason=decision.idle_reason,
            **base,
        )
        if decision.status_change is not None:
            self._journal.log(
                "INFO",
                f"Strategy status -> {decision.status_change.value}: {decision.idle_reason}",
                strategy_id=strategy.id,
                event="status_change",
                status=decision.status_change,
            )
        self._journal.cycle_complete(
            strategy.id,
            status.value,
            result.summary(),
            submitted=len(result.submitted),
            failed=len(result.failed),
            idle_reason=decision.idle_reason,
            notes=list(decision.notes),
        )
        logger.info("Strategy %s: %s", strategy.id, result.summary())
        return result

    def _cancel(self, strategy: Strategy, order: Order, deadline: Deadline) -> CancellationOutcome:
        """Cancel one working order. Transient errors propagate to abort the batch."""
        if order.broker_order_id is None:
            self._store.update_order(order.id, status=OrderStatus.CANCELLED, error_message="Cancelled before broker acknowledgment")
            return CancellationOutcome(order_id=order.id, broker_order_id=None, cancelled=True)
        deadline.check(f"cancel {order.broker_order_id}")
        try:
            self._broker.cancel_order(order.broker_order_id, order.symbol, order.quantity)
        except BrokerRejection as exc:
            self._journal.log(
                "WARNING",
                f"Cancel of {order.broker_order_id} rejected: {exc.reason}",
                strategy_id=strategy.id,
                event="cancel_rejected",
                order_id=order.id,
            )
            return CancellationOutcome(order_id=order.id, broker_order_id=order.broker_order_id, cancelled=False, error=exc.reason)
        except BrokerTransientError as exc:
            self._journal.log(
                "ERROR",
                f"Cancel of {order.broker_order_id} failed: {exc}",
                strategy_id=strategy.id,
                event="cancel_failed",
                order_id=order.id,
            )
            raise
        self._store.update_order(order.id, status=OrderStatus.CANCELLED, error_message="Cancelled: strategy edited after submission")
        self._journal.log(
            "INFO",
            f"Cancelled working order {order.broker_order_id}",
            strategy_id=strategy.id,
            event="order_cancelled",
            order_id=order.id,
        )
        return CancellationOutcome(order_id=order.id, broker_order_id=order.broker_order_id, cancelled=True)

    def _submit(
        self,
        strategy: Strategy,
        intent: OrderIntent,
        deadline: Deadline,
        now: datetime,
    ) -> tuple[IntentOutcome, BrokerTransientError | None]:
        try:
            deadline.check(f"submit {intent.order_type.value} {intent.side.value}")
        except ExecutionTimeout as exc:
            return IntentOutcome(intent=intent, status=IntentStatus.NOT_ATTEMPTED, error=str(exc)), exc

        order = self._store.insert_order(
            Order(
                id=new_order_id(),
                strategy_id=strategy.id,
                symbol=strategy.symbol,
                side=intent.side,
                order_type=intent.order_type,
                quantity=intent.quantity,
                price=intent.price,
                status=OrderStatus.SUBMITTED,
                submitted_at=now,
            )
        )
        try:
            ack = self._broker.submit_order(
                strategy.symbol,
                intent.side,
                intent.order_type,
                intent.quantity,
                intent.price,
                exchange_code=intent.exchange_code,
                daytime=intent.daytime,
            )
        except BrokerRejection as exc:
            self._store.update_order(order.id, status=OrderStatus.FAILED, error_message=exc.reason, retryable=False)
            self._journal.order_failed(strategy.id, order.id, intent, exc.reason, retryable=False)
            return IntentOutcome(intent=intent, status=IntentStatus.REJECTED, order_id=order.id, error=exc.reason), None
        except BrokerTransientError as exc:
            self._store.update_order(order.id, status=OrderStatus.FAILED, error_message=str(exc), retryable=True)
            self._journal.order_failed(strategy.id, order.id, intent, str(exc), retryable=True)
            return IntentOutcome(intent=intent, status=IntentStatus.FAILED, order_id=order.id, error=str(exc)), exc

        order = replace(order, broker_order_id=ack.broker_order_id)
        self._store.update_order(order.id, broker_order_id=ack.broker_order_id)
        self._journal.order_submitted(strategy.id, order.id, ack.broker_order_id, intent, reason=intent.reason)
        outcome = IntentOutcome(
            intent=intent,
            status=IntentStatus.SUBMITTED,
            order_id=order.id,
            broker_order_id=ack.broker_order_id,
        )
        try:
            deadline.check("post-submit")
        except ExecutionTimeout as exc:
            return outcome, exc
        return outcome, None
