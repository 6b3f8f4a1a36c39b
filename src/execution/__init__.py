"""
Execution: one pass per strategy (snapshot -> decide -> submit), plus
broker status sync. Runtime state is always re-derived from the broker.
"""

from execution.coordinator import ExecutionCoordinator, StrategyLocks
from execution.models import ExecutionResult, ExecutionStatus, IntentOutcome, IntentStatus
from execution.order_sync import OrderSynchronizer, SyncReport

__all__ = [
    "ExecutionCoordinator",
    "ExecutionResult",
    "ExecutionStatus",
    "IntentOutcome",
    "IntentStatus",
    "OrderSynchronizer",
    "StrategyLocks",
    "SyncReport",
]
