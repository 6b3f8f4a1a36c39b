"""
Execution journal: append-only JSON lines, one record per execution event.

Each record carries ts_utc, level, event, message, the strategy id and any
structured metadata. Writes are serialized so concurrent strategy runs never
interleave partial lines.
"""

import json
import threading
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _serialize(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return _serialize(asdict(obj))
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class ExecutionJournal:
    """Append-only execution log. Each line is a JSON object."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def log(
        self,
        level: str,
        message: str,
        *,
        strategy_id: str | None = None,
        event: str | None = None,
        **metadata: Any,
    ) -> dict:
        level = level.upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown journal level {level!r}")
        record = {
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "message": message,
            "strategy_id": strategy_id,
            **metadata,
        }
        line = json.dumps(_serialize(record)) + "\n"
        with self._lock:
            with open(self._path, "a") as f:
                f.write(line)
        if self._echo:
            print(line.rstrip())
        return record

    def cycle_start(self, strategy_id: str, symbol: str, session: str, **extra: Any) -> dict:
        return self.log("INFO", f"Execution started for {symbol} ({session})", strategy_id=strategy_id, event="cycle_start", symbol=symbol, session=session, **extra)

    def order_submitted(self, strategy_id: str, order_id: str, broker_order_id: str, intent: Any, **extra: Any) -> dict:
        return self.log(
            "INFO",
            f"{intent.order_type.value} {intent.side.value} {intent.quantity} @ {intent.price:g} submitted",
            strategy_id=strategy_id,
            event="order_submitted",
            order_id=order_id,
            broker_order_id=broker_order_id,
            intent=intent,
            **extra,
        )

    def order_failed(self, strategy_id: str, order_id: str, intent: Any, error: str, *, retryable: bool, **extra: Any) -> dict:
        return self.log(
            "ERROR",
            f"{intent.order_type.value} {intent.side.value} {intent.quantity} @ {intent.price:g} failed: {error}",
            strategy_id=strategy_id,
            event="order_failed",
            order_id=order_id,
            intent=intent,
            error=error,
            retryable=retryable,
            **extra,
        )

    def cycle_complete(self, strategy_id: str, status: str, message: str, **extra: Any) -> dict:
        level = "ERROR" if status == "FAILED" else "INFO"
        return self.log(level, message, strategy_id=strategy_id, event="cycle_complete", status=status, **extra)

    def read(self, *, strategy_id: str | None = None, limit: int | None = None) -> list[dict]:
        """Records oldest first, optionally filtered and trimmed to the newest *limit*."""
        if not self._path.exists():
            return []
        records = []
        with open(self._path) as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                rec = json.loads(line)
                if strategy_id is None or rec.get("strategy_id") == strategy_id:
                    records.append(rec)
        if limit is not None:
            records = records[-limit:]
        return records
