"""
CLI entry point: autotrade strategy | execute | run | sync | session | performance | logs | paper.

Every command loads config from --config (default config.yaml), prints
human-readable output, and writes execution events to the journal.
"""

import json
import logging
import sys
from datetime import date, datetime, timezone

import click
from dotenv import load_dotenv

from config import load_config
from config.strategy_params import parse_params
from strategy_core.contracts import Market, StrategyStatus, StrategyType
from strategy_core.errors import StrategyNotFoundError, StrategyValidationError

load_dotenv()

logger = logging.getLogger("autotrade")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _parse_instant(value: str | None) -> datetime | None:
    if value is None:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise click.BadParameter(f"not an ISO timestamp: {value!r}") from exc
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _parse_day(value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"not an ISO date: {value!r}") from exc


def _cfg(ctx: click.Context):
    root = ctx.find_root()
    if "cfg" not in root.obj:
        root.obj["cfg"] = load_config(root.obj["config_path"])
    return root.obj["cfg"]


def _services(ctx: click.Context):
    """Build store, broker and journal from the loaded config."""
    from broker import get_broker
    from journal import ExecutionJournal
    from store import StrategyStore

    cfg = _cfg(ctx)
    store = StrategyStore(cfg.store.path)
    journal = ExecutionJournal(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    return cfg, store, get_broker(cfg.broker), journal


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """strategy-autotrader: session-aware split-order and LOO/LOC strategy execution."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- autotrade strategy ----------


@cli.group()
def strategy() -> None:
    """Create, inspect and edit strategies."""


def _create(ctx: click.Context, *, name: str, symbol: str, market: Market, type: StrategyType, params: dict, start: date | None = None, end: date | None = None) -> None:
    try:
        parse_params(type, params)
    except StrategyValidationError as exc:
        raise click.ClickException(str(exc)) from exc
    cfg, store, _, journal = _services(ctx)
    s = store.create_strategy(
        owner=cfg.owner,
        name=name,
        symbol=symbol,
        market=market,
        type=type,
        params=params,
        start_date=start,
        end_date=end,
    )
    journal.log("INFO", f"Strategy created: {s.name} {s.symbol} {s.type.value}", strategy_id=s.id, event="strategy_created")
    click.echo(f"Created {s.type.value} strategy {s.id} ({s.symbol}).")


@strategy.command("add-split")
@click.argument("symbol")
@click.option("--name", default=None, help="Display name (default: SYMBOL split).")
@click.option("--market", type=click.Choice([m.value for m in Market]), default=Market.FOREIGN.value, show_default=True)
@click.option("--base-price", type=float, required=True, help="Price of the first tranche.")
@click.option("--total", "total_amount", type=int, required=True, help="Total shares across all tranches.")
@click.option("--splits", "split_count", type=int, required=True, help="Number of tranches.")
@click.option("--side", type=click.Choice(["BUY", "SELL"]), default="BUY", show_default=True)
@click.option("--step", "decline_value", type=float, required=True, help="Price step between tranches.")
@click.option("--step-unit", "decline_unit", type=click.Choice(["PERCENT", "ABSOLUTE"]), default="PERCENT", show_default=True)
@click.option("--distribution", type=click.Choice(["EQUAL", "PYRAMID", "INVERTED"]), default="EQUAL", show_default=True)
@click.option("--target", "target_return_rate", type=float, default=10.0, show_default=True, help="Take-profit return in percent.")
@click.option("--exchange", "exchange_code", type=click.Choice(["NASD", "NYSE", "AMEX"]), default="NASD", show_default=True)
@click.option("--daytime", is_flag=True, default=False, help="Route through the daytime venue.")
@click.pass_context
def add_split(ctx: click.Context, symbol: str, name: str | None, market: str, base_price: float, total_amount: int, split_count: int, side: str, decline_value: float, decline_unit: str, distribution: str, target_return_rate: float, exchange_code: str, daytime: bool) -> None:
    """Add a split-order ladder for SYMBOL."""
    params = {
        "basePrice": base_price,
        "totalAmount": total_amount,
        "splitCount": split_count,
        "side": side,
        "declineValue": decline_value,
        "declineUnit": decline_unit,
        "distributionType": distribution,
        "targetReturnRate": target_return_rate,
        "exchangeCode": exchange_code,
        "isDaytime": daytime or market == Market.FOREIGN_DAYTIME.value,
        "currentAvgCost": 0.0,
        "currentQty": 0,
    }
    _create(ctx, name=name or f"{symbol.upper()} split", symbol=symbol, market=Market(market), type=StrategyType.SPLIT_ORDER, params=params)


@strategy.command("add-loo-loc")
@click.argument("symbol")
@click.option("--name", default=None, help="Display name (default: SYMBOL LOO/LOC).")
@click.option("--loo-qty", type=int, default=0, help="Shares per LOO buy (0 disables LOO).")
@click.option("--loc-qty", type=int, default=0, help="Shares per LOC buy (0 disables LOC buys).")
@click.option("--target", "target_return_rate", type=float, default=10.0, show_default=True)
@click.option("--exchange", "exchange_code", type=click.Choice(["NASD", "NYSE", "AMEX"]), default="NASD", show_default=True)
@click.option("--start", "start_str", default=None, help="First active date (YYYY-MM-DD).")
@click.option("--end", "end_str", default=None, help="Last active date (YYYY-MM-DD).")
@click.pass_context
def add_loo_loc(ctx: click.Context, symbol: str, name: str | None, loo_qty: int, loc_qty: int, target_return_rate: float, exchange_code: str, start_str: str | None, end_str: str | None) -> None:
    """Add a LOO/LOC strategy for SYMBOL (foreign market only)."""
    if loo_qty <= 0 and loc_qty <= 0:
        raise click.UsageError("Enable at least one of --loo-qty / --loc-qty.")
    params = {
        "looEnabled": loo_qty > 0,
        "looQty": loo_qty,
        "locBuyEnabled": loc_qty > 0,
        "locBuyQty": loc_qty,
        "targetReturnRate": target_return_rate,
        "exchangeCode": exchange_code,
        "currentAvgCost": 0.0,
        "currentQty": 0,
    }
    if start_str:
        params["startDate"] = start_str
    if end_str:
        params["endDate"] = end_str
    _create(
        ctx,
        name=name or f"{symbol.upper()} LOO/LOC",
        symbol=symbol,
        market=Market.FOREIGN,
        type=StrategyType.LOO_LOC,
        params=params,
        start=_parse_day(start_str),
        end=_parse_day(end_str),
    )


@strategy.command("list")
@click.option("--status", type=click.Choice([s.value for s in StrategyStatus]), default=None)
@click.pass_context
def list_strategies(ctx: click.Context, status: str | None) -> None:
    """List strategies."""
    from cli.output import format_strategy_table

    cfg, store, _, _ = _services(ctx)
    strategies = store.list_strategies(status=StrategyStatus(status) if status else None, owner=cfg.owner)
    click.echo(format_strategy_table(strategies))


@strategy.command("show")
@click.argument("strategy_id")
@click.option("--orders", "order_limit", default=10, show_default=True, help="Recent orders to show.")
@click.pass_context
def show(ctx: click.Context, strategy_id: str, order_limit: int) -> None:
    """Show one strategy with its recent orders."""
    from cli.output import format_orders, format_strategy_detail

    _, store, _, _ = _services(ctx)
    try:
        s = store.get_strategy(strategy_id)
    except StrategyNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_strategy_detail(s))
    click.echo("\nRecent orders:")
    click.echo(format_orders(store.list_orders(s.id, limit=order_limit)))


@strategy.command("set-status")
@click.argument("strategy_id")
@click.argument("status", type=click.Choice([s.value for s in StrategyStatus]))
@click.pass_context
def set_status(ctx: click.Context, strategy_id: str, status: str) -> None:
    """Activate, pause or end a strategy."""
    _, store, _, journal = _services(ctx)
    try:
        s = store.set_status(strategy_id, StrategyStatus(status))
    except StrategyNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    journal.log("INFO", f"Status set to {s.status.value} by user", strategy_id=s.id, event="status_change", status=s.status)
    click.echo(f"Strategy {s.id} is now {s.status.value}.")


@strategy.command("edit")
@click.argument("strategy_id")
@click.option("--set", "assignments", multiple=True, required=True, help="KEY=VALUE (VALUE parsed as JSON when possible).")
@click.pass_context
def edit(ctx: click.Context, strategy_id: str, assignments: tuple[str, ...]) -> None:
    """Edit parameters. Orders still working from before the edit are cancelled on the next run."""
    _, store, _, journal = _services(ctx)
    try:
        s = store.get_strategy(strategy_id)
    except StrategyNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    params = dict(s.params)
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        try:
            params[key] = json.loads(raw)
        except json.JSONDecodeError:
            params[key] = raw
    try:
        parse_params(s.type, params)
    except StrategyValidationError as exc:
        raise click.ClickException(str(exc)) from exc
    store.update_params(s.id, params)
    journal.log("INFO", f"Parameters edited: {', '.join(assignments)}", strategy_id=s.id, event="strategy_edited")
    click.echo(f"Strategy {s.id} updated.")


@strategy.command("delete")
@click.argument("strategy_id")
@click.confirmation_option(prompt="Delete this strategy? Its orders remain in the audit trail.")
@click.pass_context
def delete(ctx: click.Context, strategy_id: str) -> None:
    """Delete a strategy."""
    _, store, _, journal = _services(ctx)
    try:
        store.delete_strategy(strategy_id)
    except StrategyNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    journal.log("INFO", "Strategy deleted", strategy_id=strategy_id, event="strategy_deleted")
    click.echo(f"Deleted {strategy_id}.")


# ---------- autotrade execute ----------


@cli.command()
@click.argument("strategy_id")
@click.option("--timeout", type=float, default=None, help="Broker time budget in seconds (default from config).")
@click.option("--force", is_flag=True, default=False, help="Ignore the split-order minimum interval.")
@click.option("--at", "at_str", default=None, help="Evaluate as of this ISO instant (default: now).")
@click.pass_context
def execute(ctx: click.Context, strategy_id: str, timeout: float | None, force: bool, at_str: str | None) -> None:
    """Run one execution pass for a strategy."""
    from cli.output import format_execution_result
    from execution import ExecutionCoordinator

    cfg, store, broker, journal = _services(ctx)
    coordinator = ExecutionCoordinator(
        store,
        broker,
        journal,
        timeout_seconds=cfg.execution.timeout_seconds,
        min_interval_minutes=cfg.execution.split_order_min_interval_minutes,
    )
    try:
        result = coordinator.execute(strategy_id, now=_parse_instant(at_str), timeout=timeout, force=force)
    except StrategyNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(format_execution_result(result))
    if result.status.value == "FAILED":
        ctx.exit(1)


# ---------- autotrade run ----------


@cli.command()
@click.option("--once", is_flag=True, default=False, help="Run a single cycle regardless of session, then exit.")
@click.pass_context
def run(ctx: click.Context, once: bool) -> None:
    """Run the scheduler: execute all ACTIVE strategies every interval while the market is open."""
    from cli.scheduler import run_live_loop

    run_live_loop(_cfg(ctx), once=once)


# ---------- autotrade sync ----------


@cli.command()
@click.option("--strategy", "strategy_id", default=None, help="Only this strategy's orders.")
@click.pass_context
def sync(ctx: click.Context, strategy_id: str | None) -> None:
    """Pull order status from the broker and expire stale day orders."""
    from broker import PaperBroker
    from cli.output import format_sync_report
    from execution import OrderSynchronizer

    _, store, broker, journal = _services(ctx)
    if isinstance(broker, PaperBroker):
        broker.match_orders()
    report = OrderSynchronizer(store, broker, journal).sync(strategy_id=strategy_id)
    click.echo(format_sync_report(report))


# ---------- autotrade session ----------


@cli.command()
@click.option("--at", "at_str", default=None, help="ISO instant to evaluate (default: now).")
def session(at_str: str | None) -> None:
    """Show the US market session and LOO/LOC eligibility."""
    from cli.output import format_session
    from strategy_core.session_clock import session_at

    click.echo(format_session(session_at(_parse_instant(at_str) or datetime.now(timezone.utc))))


# ---------- autotrade performance ----------


@cli.command()
@click.option("--strategy", "strategy_id", default=None, help="Metrics for one strategy instead of the portfolio.")
@click.pass_context
def performance(ctx: click.Context, strategy_id: str | None) -> None:
    """Realized / unrealized P&L and return rate."""
    from cli.output import format_performance
    from strategy_core.errors import BrokerError
    from strategy_core.pnl import portfolio_metrics, strategy_metrics

    cfg, store, broker, _ = _services(ctx)

    def _price(symbol: str) -> float | None:
        try:
            return broker.get_quote(symbol).current_price
        except BrokerError as exc:
            logger.warning("No quote for %s: %s", symbol, exc)
            return None

    if strategy_id:
        try:
            s = store.get_strategy(strategy_id)
        except StrategyNotFoundError as exc:
            raise click.ClickException(str(exc)) from exc
        metrics = strategy_metrics(store.list_orders(s.id), broker.get_holding(s.symbol), _price(s.symbol))
        click.echo(format_performance(metrics, title=f"{s.name} ({s.symbol})"))
        return

    strategies = store.list_strategies(owner=cfg.owner)
    ids = {s.id for s in strategies}
    orders = [o for o in store.list_orders() if o.strategy_id in ids]
    symbols = sorted({s.symbol for s in strategies})
    holdings = [broker.get_holding(sym) for sym in symbols]
    prices = {h.symbol: _price(h.symbol) for h in holdings if h.quantity > 0}
    metrics = portfolio_metrics(orders, holdings, prices, cash_balance=broker.get_cash_balance())
    click.echo(format_performance(metrics, title="Portfolio"))


# ---------- autotrade logs ----------


@cli.command()
@click.option("--strategy", "strategy_id", default=None)
@click.option("--limit", default=50, show_default=True)
@click.pass_context
def logs(ctx: click.Context, strategy_id: str | None, limit: int) -> None:
    """Show recent execution journal entries."""
    from cli.output import format_log_records

    _, _, _, journal = _services(ctx)
    click.echo(format_log_records(journal.read(strategy_id=strategy_id, limit=limit)))


# ---------- autotrade paper ----------


@cli.group()
def paper() -> None:
    """Drive the paper broker (quotes and fills)."""


def _paper_broker(ctx: click.Context):
    from broker import PaperBroker

    cfg = _cfg(ctx)
    if cfg.broker.provider != "paper":
        raise click.ClickException(f"Configured broker is {cfg.broker.provider!r}, not 'paper'.")
    return PaperBroker(cfg.broker.paper_state_path, initial_cash=cfg.broker.paper_initial_cash)


@paper.command("quote")
@click.argument("symbol")
@click.argument("price", type=float)
@click.option("--prev-close", type=float, default=None, help="Previous close (default: PRICE).")
@click.option("--open", "open_price", type=float, default=0.0, help="Today's opening price.")
@click.pass_context
def paper_quote(ctx: click.Context, symbol: str, price: float, prev_close: float | None, open_price: float) -> None:
    """Set the paper quote for SYMBOL."""
    broker = _paper_broker(ctx)
    broker.set_quote(symbol.upper(), price, prev_close, open_price)
    click.echo(f"{symbol.upper()} quote set: {price:g} (prev close {prev_close if prev_close is not None else price:g}).")


@paper.command("match")
@click.pass_context
def paper_match(ctx: click.Context) -> None:
    """Fill working paper orders the current quotes cross."""
    broker = _paper_broker(ctx)
    fills = broker.match_orders()
    click.echo(f"{len(fills)} order(s) filled.")
    for f in fills:
        click.echo(f"  {f.broker_order_id}: {f.filled_quantity:g} @ {f.filled_price:g}")


@paper.command("holdings")
@click.pass_context
def paper_holdings(ctx: click.Context) -> None:
    """Show paper positions and cash."""
    broker = _paper_broker(ctx)
    for h in broker.list_holdings():
        click.echo(f"  {h.symbol:8s} {h.quantity:>6d} @ {h.avg_cost:.2f}")
    click.echo(f"Cash: {broker.get_cash_balance():,.2f}")


if __name__ == "__main__":
    cli()
