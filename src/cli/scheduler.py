"""
Strategy scheduler: market-aware loop that runs every ACTIVE strategy on a
fixed interval while the US market (pre, regular or after session) is open.

Strategies execute concurrently on a thread pool; the coordinator's
per-strategy lock keeps runs of the same strategy from overlapping.
Sleeps through closed hours and weekends.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone

import click

from config.loader import AppConfig
from execution.coordinator import ExecutionCoordinator
from execution.models import ExecutionResult, ExecutionStatus
from strategy_core.contracts import Strategy, StrategyStatus
from strategy_core.session_clock import (
    DISPLAY_UTC_OFFSET_MINUTES,
    DST_BOUNDARIES,
    STANDARD_BOUNDARIES,
    boundaries_for,
    display_time,
    is_weekend,
    session_at,
)

logger = logging.getLogger("autotrade.scheduler")


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def next_market_open(now: datetime) -> datetime:
    """Next pre-market start (UTC) after *now*, skipping weekends."""
    now = _utc(now)
    local_midnight = display_time(now).replace(hour=0, minute=0, second=0, microsecond=0)
    candidates = []
    for day in range(0, 9):
        midnight_utc = (local_midnight + timedelta(days=day) - timedelta(minutes=DISPLAY_UTC_OFFSET_MINUTES)).replace(
            tzinfo=timezone.utc
        )
        for b in (DST_BOUNDARIES, STANDARD_BOUNDARIES):
            candidate = midnight_utc + timedelta(minutes=b.pre_market)
            if candidate > now and boundaries_for(candidate) == b and not is_weekend(candidate):
                candidates.append(candidate)
        if candidates:
            return min(candidates)
    raise RuntimeError(f"No market open found after {now.isoformat()}")


def next_cycle(now: datetime, interval_minutes: int) -> datetime:
    """Next interval-aligned tick strictly after *now*."""
    now = _utc(now)
    interval = interval_minutes * 60
    epoch = int(now.timestamp())
    return datetime.fromtimestamp((epoch // interval + 1) * interval, tz=timezone.utc)


def run_cycle(
    coordinator: ExecutionCoordinator,
    strategies: Sequence[Strategy],
    *,
    max_workers: int = 4,
    now: datetime | None = None,
    timeout: float | None = None,
    events=None,
) -> list[ExecutionResult]:
    """Execute every strategy once, concurrently. One failure never stops the rest."""
    now = _utc(now or datetime.now(timezone.utc))
    results: list[ExecutionResult] = []
    if not strategies:
        return results
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="strategy") as pool:
        futures = {pool.submit(coordinator.execute, s.id, now=now, timeout=timeout): s for s in strategies}
        for future in as_completed(futures):
            strategy = futures[future]
            try:
                result = future.result()
            except Exception as exc:
                logger.exception("Strategy %s raised", strategy.id)
                if events is not None:
                    events.error(f"Strategy {strategy.id} raised", detail=str(exc))
                continue
            results.append(result)
            if events is not None:
                events.execution_result(strategy, result)
    return results


def run_live_loop(cfg: AppConfig, *, once: bool = False) -> None:
    """
    Main loop: sync order status, execute all ACTIVE strategies, sleep to the
    next interval tick. Ctrl+C for graceful shutdown.
    """
    from broker import PaperBroker, get_broker
    from cli.structured_log import StructuredEventLogger
    from execution import ExecutionCoordinator, OrderSynchronizer
    from journal import ExecutionJournal
    from store import StrategyStore

    store = StrategyStore(cfg.store.path)
    broker = get_broker(cfg.broker)
    journal = ExecutionJournal(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    coordinator = ExecutionCoordinator(
        store,
        broker,
        journal,
        timeout_seconds=cfg.execution.timeout_seconds,
        min_interval_minutes=cfg.execution.split_order_min_interval_minutes,
    )
    syncer = OrderSynchronizer(store, broker, journal)
    events = StructuredEventLogger(enabled=cfg.alerting.structured_logs, webhook_url=cfg.alerting.webhook_url)
    cycles = 0

    click.echo(f"Scheduler started: every {cfg.scheduler.interval_minutes} min, broker={cfg.broker.provider}  |  Ctrl+C to stop\n")

    try:
        while True:
            now = datetime.now(timezone.utc)
            session = session_at(now)

            if not session.is_open and not once:
                nxt = next_market_open(now)
                wait = (nxt - now).total_seconds()
                events.market_closed(nxt.isoformat(), wait / 3600)
                click.echo(f"[{now:%H:%M:%S} UTC] Market closed. Sleeping until {nxt:%Y-%m-%d %H:%M} UTC ({wait / 3600:.1f}h)")
                time.sleep(wait)
                continue

            if isinstance(broker, PaperBroker):
                broker.match_orders(now)
            if cfg.scheduler.sync_orders:
                report = syncer.sync(now=now)
                events.sync_complete(report)

            strategies = store.list_strategies(status=StrategyStatus.ACTIVE)
            events.cycle_start(session.session.value, len(strategies))
            results = run_cycle(
                coordinator,
                strategies,
                max_workers=cfg.execution.max_workers,
                now=now,
                events=events,
            )
            cycles += 1
            events.cycle_complete(
                executed=sum(1 for r in results if r.status is not ExecutionStatus.SKIPPED),
                submitted=sum(len(r.submitted) for r in results),
                failed=sum(len(r.failed) for r in results),
            )
            if once:
                break

            wake_at = next_cycle(datetime.now(timezone.utc), cfg.scheduler.interval_minutes)
            wait = max(0.0, (wake_at - datetime.now(timezone.utc)).total_seconds())
            click.echo(f"[{now:%H:%M:%S} UTC] {len(results)} strategy run(s). Next cycle {wake_at:%H:%M} UTC")
            time.sleep(wait)

    except KeyboardInterrupt:
        events.shutdown(cycles)
        click.echo(f"\n\nShutting down after {cycles} cycle(s). Goodbye.")
