"""
Structured JSON events for the scheduler loop.

One JSON object per line on stderr, tagged with the service name, so a log
aggregator can follow cycles, orders and strategy endings. When a webhook
URL is configured, alert events are also POSTed there:

    order_submitted, order_rejected, strategy_ended, error

Webhook failures are logged and never interrupt the loop.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

from execution.models import ExecutionResult, ExecutionStatus, IntentStatus
from execution.order_sync import SyncReport
from strategy_core.contracts import Strategy, StrategyStatus

logger = logging.getLogger("autotrade.events")

ALERT_EVENTS = frozenset({"order_submitted", "order_rejected", "strategy_ended", "error"})


class StructuredEventLogger:
    def __init__(
        self,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
        service: str = "autotrade",
    ) -> None:
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._service = service

    def _emit(self, event: str, **fields: Any) -> dict:
        record = {"ts": datetime.now(timezone.utc).isoformat(), "event": event, "service": self._service, **fields}
        line = json.dumps(record, default=str)
        if self._enabled:
            self._stream.write(line + "\n")
            self._stream.flush()
        if self._webhook_url and event in ALERT_EVENTS:
            self._post(line)
        return record

    def _post(self, body: str) -> None:
        request = urllib.request.Request(
            self._webhook_url,
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            urllib.request.urlopen(request, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    # ---------- loop ----------

    def cycle_start(self, session: str, strategies: int) -> dict:
        return self._emit("cycle_start", session=session, strategies=strategies)

    def cycle_complete(self, executed: int, submitted: int, failed: int) -> dict:
        return self._emit("cycle_complete", executed=executed, submitted=submitted, failed=failed)

    def market_closed(self, next_open: str, wait_hours: float) -> dict:
        return self._emit("market_closed", next_open=next_open, wait_hours=round(wait_hours, 1))

    def shutdown(self, cycles: int) -> dict:
        return self._emit("shutdown", cycles=cycles)

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    # ---------- orders and strategies ----------

    def order_submitted(self, strategy_id: str, symbol: str, side: str, order_type: str, qty: int, price: float) -> dict:
        return self._emit(
            "order_submitted",
            strategy_id=strategy_id,
            symbol=symbol,
            side=side,
            order_type=order_type,
            qty=qty,
            price=price,
        )

    def order_rejected(self, strategy_id: str, reason: str) -> dict:
        return self._emit("order_rejected", strategy_id=strategy_id, reason=reason)

    def strategy_ended(self, strategy_id: str, reason: str) -> dict:
        return self._emit("strategy_ended", strategy_id=strategy_id, reason=reason)

    def sync_complete(self, report: SyncReport) -> dict:
        """Summary of an order-status sync. Errors are raised as an alert too."""
        if report.errors:
            self.error("Order sync incomplete", detail="; ".join(report.errors))
        return self._emit(
            "sync_complete",
            checked=report.checked,
            filled=report.filled,
            cancelled=report.cancelled,
            expired=report.expired,
            errors=len(report.errors),
        )

    def execution_result(self, strategy: Strategy, result: ExecutionResult) -> list[dict]:
        """One event per submitted or rejected order, plus failure and ending alerts."""
        records = []
        for outcome in result.outcomes:
            intent = outcome.intent
            if outcome.status is IntentStatus.SUBMITTED:
                records.append(
                    self.order_submitted(
                        strategy.id,
                        strategy.symbol,
                        intent.side.value,
                        intent.order_type.value,
                        intent.quantity,
                        intent.price,
                    )
                )
            elif outcome.status in (IntentStatus.REJECTED, IntentStatus.FAILED):
                records.append(self.order_rejected(strategy.id, outcome.error or "unknown"))
        if result.status is ExecutionStatus.FAILED:
            records.append(self.error(f"Strategy {strategy.id} failed", detail=result.error or ""))
        if result.status_change is StrategyStatus.ENDED:
            records.append(self.strategy_ended(strategy.id, result.idle_reason or ""))
        return records
