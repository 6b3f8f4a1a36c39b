"""Tests for the engine entry point: date window, stale orders, dispatch, runtime patch."""

from datetime import date

import pytest

from conftest import REGULAR_DST, make_order, make_strategy, snapshot, utc
from strategy_core.contracts import (
    DeclineUnit,
    DistributionType,
    LooLocParams,
    OrderStatus,
    Side,
    SplitOrderParams,
    StrategyStatus,
    StrategyType,
)
from strategy_core.engine import date_window, decide, stale_orders
from strategy_core.errors import StrategyValidationError

SPLIT = SplitOrderParams(
    base_price=100,
    total_amount=30,
    split_count=3,
    side=Side.BUY,
    decline_value=5,
    decline_unit=DeclineUnit.PERCENT,
    distribution_type=DistributionType.EQUAL,
)
LOO_LOC = LooLocParams(loo_enabled=True, loo_qty=1, loc_buy_enabled=True, loc_buy_qty=1)


def test_params_type_must_match_strategy_type() -> None:
    strategy = make_strategy(StrategyType.SPLIT_ORDER)
    with pytest.raises(StrategyValidationError, match="SPLIT_ORDER"):
        decide(strategy, LOO_LOC, snapshot(), [], REGULAR_DST)


def test_runtime_patch_copied_from_holding() -> None:
    decision = decide(make_strategy(), SPLIT, snapshot(qty=7, avg=98.5, price=97), [], REGULAR_DST)
    assert decision.runtime_patch == {"currentAvgCost": 98.5, "currentQty": 7}


# ---------------------------------------------------------------------------
# Date window
# ---------------------------------------------------------------------------


def test_end_date_passed_ends_strategy() -> None:
    strategy = make_strategy(end_date=date(2024, 7, 9))
    decision = decide(strategy, SPLIT, snapshot(), [], REGULAR_DST)
    assert decision.status_change is StrategyStatus.ENDED
    assert decision.intents == ()
    assert "2024-07-09" in decision.idle_reason


def test_end_date_is_inclusive() -> None:
    strategy = make_strategy(end_date=date(2024, 7, 10))
    decision = decide(strategy, SPLIT, snapshot(), [], REGULAR_DST)
    assert decision.status_change is None
    assert len(decision.intents) == 1


def test_before_start_date_is_idle() -> None:
    strategy = make_strategy(start_date=date(2024, 7, 11))
    decision = decide(strategy, SPLIT, snapshot(), [], REGULAR_DST)
    assert decision.intents == ()
    assert decision.status_change is None
    assert decision.idle_reason == "Starts on 2024-07-11"


def test_params_dates_override_strategy_dates() -> None:
    params = LooLocParams(
        loo_enabled=True, loo_qty=1, loc_buy_enabled=False, loc_buy_qty=0, end_date=date(2024, 7, 1)
    )
    strategy = make_strategy(StrategyType.LOO_LOC, end_date=date(2024, 12, 31))
    assert date_window(strategy, params) == (None, date(2024, 7, 1))
    decision = decide(strategy, params, snapshot(), [], REGULAR_DST)
    assert decision.status_change is StrategyStatus.ENDED


def test_window_uses_market_date_not_utc_date() -> None:
    # 2024-07-11 02:00 UTC is still July 10 in New York
    strategy = make_strategy(end_date=date(2024, 7, 10))
    decision = decide(strategy, SPLIT, snapshot(at=utc(2024, 7, 11, 2)), [], utc(2024, 7, 11, 2))
    assert decision.status_change is None


# ---------------------------------------------------------------------------
# Stale orders
# ---------------------------------------------------------------------------


def test_orders_placed_before_edit_are_stale() -> None:
    strategy = make_strategy(updated_at=utc(2024, 7, 10, 12))
    old = make_order(Side.BUY, 10, 100.0, submitted_at=utc(2024, 7, 10, 8))
    new = make_order(Side.BUY, 10, 95.0, submitted_at=utc(2024, 7, 10, 13))
    done = make_order(Side.BUY, 10, 90.0, status=OrderStatus.FILLED, submitted_at=utc(2024, 7, 10, 8))
    assert stale_orders(strategy, [old, new, done]) == [old]


def test_stale_order_cancelled_and_tranche_reissued() -> None:
    strategy = make_strategy(updated_at=utc(2024, 7, 10, 12))
    old = make_order(Side.BUY, 10, 100.0, submitted_at=utc(2024, 7, 10, 8))
    decision = decide(strategy, SPLIT, snapshot(), [old], REGULAR_DST)
    assert decision.cancellations == (old,)
    assert len(decision.intents) == 1
    assert decision.intents[0].price == 100.0


def test_stale_cancellation_survives_end_date() -> None:
    strategy = make_strategy(updated_at=utc(2024, 7, 10, 12), end_date=date(2024, 7, 1))
    old = make_order(Side.BUY, 10, 100.0, submitted_at=utc(2024, 7, 10, 8))
    decision = decide(strategy, SPLIT, snapshot(), [old], REGULAR_DST)
    assert decision.cancellations == (old,)
    assert decision.status_change is StrategyStatus.ENDED


def test_stale_orders_not_cancelled_twice() -> None:
    strategy = make_strategy(updated_at=utc(2024, 7, 10, 12))
    old_buy = make_order(Side.BUY, 10, 95.0, submitted_at=utc(2024, 7, 10, 8))
    decision = decide(strategy, SPLIT, snapshot(qty=10, avg=100, price=111), [old_buy], REGULAR_DST)
    assert decision.cancellations == (old_buy,)
    assert decision.intents[0].side is Side.SELL
