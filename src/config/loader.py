"""
App config: config.yaml -> frozen dataclasses, one per section.

The YAML file carries no secrets. Broker credentials come from the
environment (or a .env file loaded by the CLI). Bad values raise ConfigError.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from strategy_core.errors import ConfigError

BROKER_PROVIDERS = ("paper", "alpaca")


@dataclass(frozen=True)
class StoreConfig:
    path: str = "data/autotrade.db"


@dataclass(frozen=True)
class BrokerConfig:
    provider: str = "paper"
    paper_state_path: str = "data/paper_broker.db"
    paper_initial_cash: float = 100_000.0
    alpaca_paper: bool = True
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class ExecutionConfig:
    timeout_seconds: float = 10.0
    max_workers: int = 4
    split_order_min_interval_minutes: int = 10


@dataclass(frozen=True)
class SchedulerConfig:
    interval_minutes: int = 10
    sync_orders: bool = True


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/execution_log.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    owner: str = "default"
    store: StoreConfig = StoreConfig()
    broker: BrokerConfig = BrokerConfig()
    execution: ExecutionConfig = ExecutionConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Read *path* into an AppConfig. Missing sections fall back to defaults;
    the Alpaca keys are taken from APCA_API_KEY_ID and APCA_API_SECRET_KEY.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    s_raw = _section(raw, "store")
    store_cfg = StoreConfig(path=s_raw.get("path", "data/autotrade.db"))

    b_raw = _section(raw, "broker")
    provider = str(b_raw.get("provider", "paper")).lower()
    if provider not in BROKER_PROVIDERS:
        raise ConfigError(f"Unknown broker provider {provider!r}; expected one of {BROKER_PROVIDERS}")
    broker_cfg = BrokerConfig(
        provider=provider,
        paper_state_path=b_raw.get("paper_state_path", "data/paper_broker.db"),
        paper_initial_cash=float(b_raw.get("paper_initial_cash", 100_000)),
        alpaca_paper=bool(b_raw.get("alpaca_paper", True)),
        api_key=os.environ.get("APCA_API_KEY_ID", ""),
        api_secret=os.environ.get("APCA_API_SECRET_KEY", ""),
    )

    ex_raw = _section(raw, "execution")
    ex_cfg = ExecutionConfig(
        timeout_seconds=float(ex_raw.get("timeout_seconds", 10.0)),
        max_workers=int(ex_raw.get("max_workers", 4)),
        split_order_min_interval_minutes=int(ex_raw.get("split_order_min_interval_minutes", 10)),
    )
    if ex_cfg.timeout_seconds <= 0:
        raise ConfigError("execution.timeout_seconds must be positive")
    if ex_cfg.max_workers < 1:
        raise ConfigError("execution.max_workers must be at least 1")

    sc_raw = _section(raw, "scheduler")
    sc_cfg = SchedulerConfig(
        interval_minutes=int(sc_raw.get("interval_minutes", 10)),
        sync_orders=bool(sc_raw.get("sync_orders", True)),
    )

    j_raw = _section(raw, "journal")
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/execution_log.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = _section(raw, "alerting")
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    return AppConfig(
        owner=str(raw.get("owner", "default")),
        store=store_cfg,
        broker=broker_cfg,
        execution=ex_cfg,
        scheduler=sc_cfg,
        journal=j_cfg,
        alerting=a_cfg,
    )
