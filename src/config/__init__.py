"""
Configuration loaders.

App config:         reads config.yaml, resolves env vars for secrets.
Strategy params:    validates a strategy's JSON payload against its JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    BrokerConfig,
    ExecutionConfig,
    JournalConfig,
    SchedulerConfig,
    StoreConfig,
    load_config,
)
from config.strategy_params import parse_params, params_for

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "BrokerConfig",
    "ExecutionConfig",
    "JournalConfig",
    "SchedulerConfig",
    "StoreConfig",
    "load_config",
    # Strategy params (JSON + schema)
    "params_for",
    "parse_params",
]
