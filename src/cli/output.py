"""
Human-readable terminal output for strategies, execution results, sessions
and performance. Every CLI command prints through these formatters.
"""

from __future__ import annotations

from collections.abc import Sequence

from execution.models import ExecutionResult, IntentStatus
from execution.order_sync import SyncReport
from strategy_core.contracts import Order, Strategy
from strategy_core.pnl import PerformanceMetrics
from strategy_core.session_clock import MarketSession, format_minutes


def _fmt_money(value: float) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value):,.2f}"


def format_strategy_table(strategies: Sequence[Strategy]) -> str:
    if not strategies:
        return "No strategies."
    lines = [f"{'ID':36s}  {'NAME':20s} {'SYMBOL':8s} {'TYPE':11s} {'MARKET':15s} {'STATUS':8s} LAST RUN"]
    for s in strategies:
        last = s.last_executed_at.strftime("%Y-%m-%d %H:%M") if s.last_executed_at else "-"
        lines.append(
            f"{s.id:36s}  {s.name[:20]:20s} {s.symbol:8s} {s.type.value:11s} {s.market.value:15s} {s.status.value:8s} {last}"
        )
    return "\n".join(lines)


def format_strategy_detail(strategy: Strategy) -> str:
    lines = [
        f"=== {strategy.name} ({strategy.id}) ===",
        f"Symbol   : {strategy.symbol}  [{strategy.market.value}]",
        f"Type     : {strategy.type.value}",
        f"Status   : {strategy.status.value}",
    ]
    if strategy.start_date or strategy.end_date:
        lines.append(f"Window   : {strategy.start_date or '-'} -> {strategy.end_date or '-'}")
    lines.append("Params   :")
    for key in sorted(strategy.params):
        lines.append(f"  {key:18s} {strategy.params[key]}")
    return "\n".join(lines)


def format_execution_result(result: ExecutionResult) -> str:
    lines = [f"Strategy {result.strategy_id}: {result.summary()}"]
    if result.session:
        lines.append(f"  Session       : {result.session}")
    for c in result.cancellations:
        mark = "cancelled" if c.cancelled else f"cancel failed ({c.error})"
        lines.append(f"  [cancel]      {c.broker_order_id or c.order_id}: {mark}")
    for o in result.outcomes:
        i = o.intent
        line = f"  [{o.status.value.lower():13s}] {i.order_type.value} {i.side.value} {i.quantity} @ {i.price:g}"
        if o.status is IntentStatus.SUBMITTED:
            line += f"  (broker id {o.broker_order_id})"
        elif o.error:
            line += f"  - {o.error}"
        lines.append(line)
        if i.reason:
            lines.append(f"                  {i.reason}")
    for note in result.notes:
        lines.append(f"  Note          : {note}")
    if result.status_change is not None:
        lines.append(f"  Status change : {result.status_change.value}")
    lines.append(f"  State saved   : {'yes' if result.state_persisted else 'no'}")
    return "\n".join(lines)


def format_session(ms: MarketSession) -> str:
    b = ms.boundaries
    lines = [
        f"At               : {ms.at.isoformat()}",
        f"Session          : {ms.session.value}{'  (weekend)' if ms.is_weekend else ''}",
        f"DST              : {'yes' if ms.is_dst else 'no'}",
        f"LOO eligible     : {'yes' if ms.can_submit_loo else 'no'}",
        f"LOC eligible     : {'yes' if ms.can_submit_loc else 'no'}",
    ]
    if ms.minutes_since_open is not None:
        lines.append(f"Since open       : {ms.minutes_since_open} min")
    lines.append(
        "Boundaries (UTC+9): "
        f"pre {format_minutes(b.pre_market)}  regular {format_minutes(b.regular_open)}-{format_minutes(b.regular_close)}  "
        f"after until {format_minutes(b.after_close)}"
    )
    return "\n".join(lines)


def format_performance(metrics: PerformanceMetrics, title: str = "Performance") -> str:
    lines = [
        f"=== {title} ===",
        f"Total value      : {_fmt_money(metrics.total_value)}",
        f"Invested (held)  : {_fmt_money(metrics.total_invested)}",
        f"Realized P&L     : {_fmt_money(metrics.realized_pnl)}",
        f"Unrealized P&L   : {_fmt_money(metrics.unrealized_pnl)}",
        f"Return           : {metrics.return_rate:.2f}%",
        f"Filled orders    : {metrics.trade_count}",
    ]
    if metrics.cash_balance:
        lines.append(f"Cash             : {_fmt_money(metrics.cash_balance)}")
    for symbol, amount in sorted(metrics.realized_by_symbol.items()):
        lines.append(f"  realized {symbol:8s}: {_fmt_money(amount)}")
    if metrics.missing_prices:
        lines.append(f"No price (at cost): {', '.join(metrics.missing_prices)}")
    for w in metrics.warnings:
        lines.append(f"WARNING: {w}")
    return "\n".join(lines)


def format_orders(orders: Sequence[Order]) -> str:
    if not orders:
        return "No orders."
    lines = []
    for o in orders:
        price = f"{o.price:g}" if o.price is not None else "-"
        line = f"{o.submitted_at:%Y-%m-%d %H:%M}  {o.status.value:16s} {o.order_type.value:5s} {o.side.value:4s} {o.quantity} @ {price}"
        if o.filled_quantity:
            line += f"  filled {o.filled_quantity:g} @ {(o.filled_price or 0):g}"
        if o.error_message:
            line += f"  ({o.error_message})"
        lines.append(line)
    return "\n".join(lines)


def format_sync_report(report: SyncReport) -> str:
    lines = [
        f"Checked {report.checked} working order(s): {report.updated} updated "
        f"({report.filled} filled, {report.cancelled} cancelled), {report.expired} expired."
    ]
    for err in report.errors:
        lines.append(f"  error: {err}")
    return "\n".join(lines)


def format_log_records(records: Sequence[dict]) -> str:
    if not records:
        return "No log entries."
    return "\n".join(
        f"{r.get('ts_utc', '')[:19]}  {r.get('level', ''):7s} {(r.get('strategy_id') or '-')[:8]:8s}  {r.get('message', '')}"
        for r in records
    )
