"""Tests for the execution journal. Append-only JSON lines; thread-safe writes."""

import json
import threading
from pathlib import Path

import pytest

from journal.writer import ExecutionJournal
from strategy_core.contracts import Holding, OrderIntent, OrderType, Side, StrategyStatus

INTENT = OrderIntent(side=Side.BUY, order_type=OrderType.LOC, quantity=3, price=101.5, reason="LOC buy")


def test_journal_append_only(tmp_path: Path) -> None:
    path = tmp_path / "log.jsonl"
    j = ExecutionJournal(path)
    j.cycle_start("s1", "AAPL", "REGULAR", holding=Holding("AAPL", 5, 100.0))
    j.order_submitted("s1", "o1", "B1", INTENT, reason=INTENT.reason)
    j.cycle_complete("s1", "COMPLETED", "COMPLETED: 1 submitted, 0 failed")

    lines = path.read_text().splitlines()
    assert len(lines) == 3
    r0 = json.loads(lines[0])
    assert r0["event"] == "cycle_start"
    assert r0["strategy_id"] == "s1"
    assert r0["holding"] == {"symbol": "AAPL", "quantity": 5, "avg_cost": 100.0}
    r1 = json.loads(lines[1])
    assert r1["message"] == "LOC BUY 3 @ 101.5 submitted"
    assert r1["intent"]["side"] == "BUY"
    assert r1["broker_order_id"] == "B1"
    r2 = json.loads(lines[2])
    assert r2["level"] == "INFO"
    assert r2["status"] == "COMPLETED"


def test_failed_cycle_logged_as_error(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")
    rec = j.cycle_complete("s1", "FAILED", "Snapshot unavailable")
    assert rec["level"] == "ERROR"


def test_order_failed_records_retryable(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")
    j.order_failed("s1", "o1", INTENT, "HTTP 503", retryable=True)
    (rec,) = j.read()
    assert rec["level"] == "ERROR"
    assert rec["retryable"] is True
    assert rec["error"] == "HTTP 503"


def test_enums_and_dates_serialized(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")
    j.log("info", "ended", strategy_id="s1", event="status_change", status=StrategyStatus.ENDED)
    assert j.read()[0]["status"] == "ENDED"
    assert j.read()[0]["level"] == "INFO"


def test_unknown_level_rejected(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")
    with pytest.raises(ValueError, match="level"):
        j.log("LOUD", "x")


def test_read_filters_and_limits(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")
    for i in range(5):
        j.log("INFO", f"m{i}", strategy_id="a" if i % 2 == 0 else "b")
    assert [r["message"] for r in j.read(strategy_id="a")] == ["m0", "m2", "m4"]
    assert [r["message"] for r in j.read(limit=2)] == ["m3", "m4"]


def test_read_missing_file(tmp_path: Path) -> None:
    assert ExecutionJournal(tmp_path / "none.jsonl").read() == []


def test_concurrent_writes_never_interleave(tmp_path: Path) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl")

    def worker(n: int) -> None:
        for i in range(50):
            j.log("INFO", "x" * 200, strategy_id=f"s{n}", seq=i)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    records = j.read()
    assert len(records) == 200
    assert all(r["message"] == "x" * 200 for r in records)


def test_echo_stdout(tmp_path: Path, capsys) -> None:
    j = ExecutionJournal(tmp_path / "log.jsonl", echo_stdout=True)
    j.log("INFO", "hello")
    assert '"message": "hello"' in capsys.readouterr().out
