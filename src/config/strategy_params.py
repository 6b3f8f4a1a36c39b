"""
Strategy parameter payloads: camelCase JSON -> typed params, validated against JSON Schema.

Schemas:
    docs/config/split_order.schema.json
    docs/config/loo_loc.schema.json

The payload is a tagged union keyed by the strategy type. Anything that does
not validate raises StrategyValidationError before reaching the engine.

Usage:
    from config.strategy_params import parse_params
    params = parse_params(StrategyType.SPLIT_ORDER, {"basePrice": 100, ...})
"""

from __future__ import annotations

import json
import logging
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema

from strategy_core.contracts import (
    DEFAULT_TARGET_RETURN_RATE,
    DeclineUnit,
    DistributionType,
    LooLocParams,
    Market,
    Side,
    SplitOrderParams,
    Strategy,
    StrategyParams,
    StrategyType,
)
from strategy_core.errors import StrategyValidationError

logger = logging.getLogger("autotrade.config")


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml; fall back to CWD."""
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()
SCHEMA_DIR = _PROJECT_ROOT / "docs" / "config"

_SCHEMA_FILES = {
    StrategyType.SPLIT_ORDER: "split_order.schema.json",
    StrategyType.LOO_LOC: "loo_loc.schema.json",
}


@lru_cache(maxsize=None)
def _load_schema(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise StrategyValidationError(f"Schema file not found: {path}")
    with open(path) as f:
        return json.load(f)


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    schema = _load_schema(schema_path)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        where = ".".join(str(p) for p in exc.absolute_path) or "<root>"
        raise StrategyValidationError(f"Invalid parameters at {where}: {exc.message}") from exc


def _parse_date(value: str | None, field_name: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise StrategyValidationError(f"{field_name} is not a valid date: {value!r}") from exc


def _build_split_order(data: dict[str, Any]) -> SplitOrderParams:
    return SplitOrderParams(
        base_price=float(data["basePrice"]),
        total_amount=int(data["totalAmount"]),
        split_count=int(data["splitCount"]),
        side=Side(data["side"]),
        decline_value=float(data["declineValue"]),
        decline_unit=DeclineUnit(data["declineUnit"]),
        distribution_type=DistributionType(data["distributionType"]),
        target_return_rate=float(data.get("targetReturnRate", DEFAULT_TARGET_RETURN_RATE)),
        exchange_code=data.get("exchangeCode", "NASD"),
        is_daytime=bool(data.get("isDaytime", False)),
        current_avg_cost=float(data.get("currentAvgCost", 0.0)),
        current_qty=int(data.get("currentQty", 0)),
    )


def _build_loo_loc(data: dict[str, Any]) -> LooLocParams:
    start = _parse_date(data.get("startDate"), "startDate")
    end = _parse_date(data.get("endDate"), "endDate")
    if start is not None and end is not None and end < start:
        raise StrategyValidationError(f"endDate {end} is before startDate {start}")
    return LooLocParams(
        loo_enabled=bool(data["looEnabled"]),
        loo_qty=int(data["looQty"]),
        loc_buy_enabled=bool(data["locBuyEnabled"]),
        loc_buy_qty=int(data["locBuyQty"]),
        target_return_rate=float(data.get("targetReturnRate", DEFAULT_TARGET_RETURN_RATE)),
        exchange_code=data.get("exchangeCode", "NASD"),
        start_date=start,
        end_date=end,
        current_avg_cost=float(data.get("currentAvgCost", 0.0)),
        current_qty=int(data.get("currentQty", 0)),
    )


def parse_params(
    strategy_type: StrategyType,
    payload: dict[str, Any],
    *,
    schema_dir: Path | None = None,
) -> StrategyParams:
    """Validate *payload* for *strategy_type* and return the typed params."""
    if not isinstance(payload, dict):
        raise StrategyValidationError(f"Parameters must be an object, got {type(payload).__name__}")
    schema_path = (schema_dir or SCHEMA_DIR) / _SCHEMA_FILES[strategy_type]
    _validate_schema(payload, schema_path)
    if strategy_type is StrategyType.SPLIT_ORDER:
        return _build_split_order(payload)
    return _build_loo_loc(payload)


def params_for(strategy: Strategy, *, schema_dir: Path | None = None) -> StrategyParams:
    """Typed params for a stored strategy, including the market constraints."""
    if strategy.type is StrategyType.LOO_LOC and strategy.market is Market.DOMESTIC:
        raise StrategyValidationError("LOO/LOC strategies are only available on the foreign market")
    return parse_params(strategy.type, strategy.params, schema_dir=schema_dir)
