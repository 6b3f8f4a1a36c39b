"""Tests for the strategy scheduler helpers (no network, no sleep)."""

import io
import json
from datetime import datetime, timezone

import pytest

from broker.paper_broker import PaperBroker
from cli.scheduler import next_cycle, next_market_open, run_cycle, run_live_loop
from cli.structured_log import StructuredEventLogger
from config.loader import AlertingConfig, AppConfig, BrokerConfig, JournalConfig, StoreConfig
from conftest import REGULAR_DST, SPLIT_PARAMS, FakeBroker, utc
from execution.coordinator import ExecutionCoordinator
from execution.models import ExecutionStatus
from store.strategy_store import StrategyStore
from strategy_core.contracts import Market, StrategyType
from strategy_core.errors import BrokerRejection
from strategy_core.session_clock import Session, session_at

# ---------------------------------------------------------------------------
# next_market_open
# ---------------------------------------------------------------------------


def test_next_open_same_day_before_pre_market() -> None:
    # Wednesday 11:00 display time (closed) -> 17:00 display (DST pre-market)
    assert next_market_open(utc(2024, 7, 10, 2)) == utc(2024, 7, 10, 8)


def test_next_open_skips_weekend() -> None:
    # Friday after-market -> Monday 18:00 display (standard time)
    assert next_market_open(utc(2024, 12, 6, 22)) == utc(2024, 12, 9, 9)


def test_next_open_is_pre_market_start() -> None:
    nxt = next_market_open(utc(2024, 12, 7, 12))
    assert session_at(nxt).session is Session.PRE_MARKET
    assert session_at(nxt).minutes_since_open is None


def test_next_open_strictly_after_now() -> None:
    at_open = utc(2024, 7, 10, 8)
    assert next_market_open(at_open) == utc(2024, 7, 11, 8)


def test_next_open_across_dst_start() -> None:
    # Saturday before DST starts -> Monday pre-market at the DST boundary (17:00 display)
    assert next_market_open(utc(2024, 3, 9, 12)) == utc(2024, 3, 11, 8)


# ---------------------------------------------------------------------------
# next_cycle
# ---------------------------------------------------------------------------


def test_next_cycle_aligned_to_interval() -> None:
    assert next_cycle(utc(2024, 7, 10, 14, 3), 10) == utc(2024, 7, 10, 14, 10)


def test_next_cycle_on_boundary_moves_forward() -> None:
    assert next_cycle(utc(2024, 7, 10, 14, 10), 10) == utc(2024, 7, 10, 14, 20)


def test_next_cycle_naive_taken_as_utc() -> None:
    assert next_cycle(datetime(2024, 7, 10, 14, 59), 15) == utc(2024, 7, 10, 15, 0)


# ---------------------------------------------------------------------------
# run_cycle
# ---------------------------------------------------------------------------


def _strategies(store: StrategyStore, n: int):
    return [
        store.create_strategy(
            owner="t",
            name=f"s{i}",
            symbol=f"SYM{i}",
            market=Market.FOREIGN,
            type=StrategyType.SPLIT_ORDER,
            params=dict(SPLIT_PARAMS),
            now=utc(2024, 1, 1),
        )
        for i in range(n)
    ]


def test_run_cycle_executes_every_strategy(store, journal) -> None:
    strategies = _strategies(store, 3)
    broker = FakeBroker()
    buf = io.StringIO()
    events = StructuredEventLogger(stream=buf)
    coordinator = ExecutionCoordinator(store, broker, journal)

    results = run_cycle(coordinator, strategies, max_workers=3, now=REGULAR_DST, events=events)

    assert len(results) == 3
    assert all(r.status is ExecutionStatus.COMPLETED for r in results)
    assert len(broker.submitted) == 3
    emitted = [json.loads(line)["event"] for line in buf.getvalue().splitlines()]
    assert emitted.count("order_submitted") == 3


def test_run_cycle_empty() -> None:
    assert run_cycle(object(), []) == []


def test_one_failure_does_not_stop_the_rest(store, journal) -> None:
    strategies = _strategies(store, 2)

    class Exploding:
        def execute(self, strategy_id, **kw):
            if strategy_id == strategies[0].id:
                raise RuntimeError("boom")
            return ExecutionCoordinator(store, FakeBroker(), journal).execute(strategy_id, **kw)

    buf = io.StringIO()
    results = run_cycle(Exploding(), strategies, now=REGULAR_DST, events=StructuredEventLogger(stream=buf))
    assert [r.strategy_id for r in results] == [strategies[1].id]
    assert any(json.loads(line)["event"] == "error" for line in buf.getvalue().splitlines())


def test_rejections_emitted(store, journal) -> None:
    strategies = _strategies(store, 1)
    broker = FakeBroker()
    broker.script[0] = BrokerRejection("market closed")
    buf = io.StringIO()
    run_cycle(ExecutionCoordinator(store, broker, journal), strategies, now=REGULAR_DST, events=StructuredEventLogger(stream=buf))
    records = [json.loads(line) for line in buf.getvalue().splitlines()]
    assert records[0]["event"] == "order_rejected"
    assert records[0]["reason"] == "market closed"


# ---------------------------------------------------------------------------
# run_live_loop (single pass, paper broker)
# ---------------------------------------------------------------------------


def test_live_loop_once_with_paper_broker(tmp_path) -> None:
    cfg = AppConfig(
        store=StoreConfig(path=str(tmp_path / "autotrade.db")),
        broker=BrokerConfig(provider="paper", paper_state_path=str(tmp_path / "paper.db")),
        journal=JournalConfig(path=str(tmp_path / "log.jsonl")),
        alerting=AlertingConfig(structured_logs=False),
    )
    store = StrategyStore(cfg.store.path)
    strategy = store.create_strategy(
        owner="t",
        name="ladder",
        symbol="AAPL",
        market=Market.FOREIGN,
        type=StrategyType.SPLIT_ORDER,
        params=dict(SPLIT_PARAMS),
        now=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    PaperBroker(cfg.broker.paper_state_path).set_quote("AAPL", 101.0, previous_close=100.0)

    run_live_loop(cfg, once=True)

    orders = store.list_orders(strategy.id)
    assert len(orders) == 1
    assert orders[0].price == 100.0
    assert store.get_strategy(strategy.id).last_executed_at is not None
