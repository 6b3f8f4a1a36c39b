"""Execution results: one aggregate per pass, one outcome per intent."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from strategy_core.contracts import OrderIntent, StrategyStatus


class ExecutionStatus(str, Enum):
    COMPLETED = "COMPLETED"  # every intent accepted
    PARTIAL = "PARTIAL"  # at least one rejection, batch otherwise ran
    IDLE = "IDLE"  # nothing due this cycle; not a failure
    FAILED = "FAILED"  # validation, snapshot, transient broker error or timeout
    SKIPPED = "SKIPPED"  # not run: inactive, already running, too soon


class IntentStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"
    NOT_ATTEMPTED = "NOT_ATTEMPTED"


@dataclass(frozen=True)
class IntentOutcome:
    intent: OrderIntent
    status: IntentStatus
    order_id: str | None = None
    broker_order_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CancellationOutcome:
    order_id: str
    broker_order_id: str | None
    cancelled: bool
    error: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    strategy_id: str
    status: ExecutionStatus
    started_at: datetime
    outcomes: tuple[IntentOutcome, ...] = ()
    cancellations: tuple[CancellationOutcome, ...] = ()
    state_persisted: bool = False
    status_change: StrategyStatus | None = None
    session: str | None = None
    idle_reason: str | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def submitted(self) -> list[IntentOutcome]:
        return [o for o in self.outcomes if o.status is IntentStatus.SUBMITTED]

    @property
    def failed(self) -> list[IntentOutcome]:
        return [o for o in self.outcomes if o.status in (IntentStatus.REJECTED, IntentStatus.FAILED)]

    @property
    def ok(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.IDLE, ExecutionStatus.SKIPPED)

    def summary(self) -> str:
        if self.status is ExecutionStatus.FAILED:
            return f"FAILED: {self.error}"
        if self.status is ExecutionStatus.SKIPPED:
            return f"SKIPPED: {self.idle_reason}"
        if self.status is ExecutionStatus.IDLE:
            return f"IDLE: {self.idle_reason or 'nothing to do'}"
        return (
            f"{self.status.value}: {len(self.submitted)} submitted, {len(self.failed)} failed"
            + (f", {len(self.cancellations)} cancelled" if self.cancellations else "")
        )
