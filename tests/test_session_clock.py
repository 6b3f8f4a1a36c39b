"""Tests for the market session clock. Pure; every instant is explicit UTC."""

from datetime import date, datetime, timedelta, timezone

import pytest

from strategy_core.contracts import Market, OrderType
from strategy_core.session_clock import (
    DST_BOUNDARIES,
    STANDARD_BOUNDARIES,
    Session,
    can_submit,
    display_minutes,
    eastern_date,
    format_minutes,
    is_dst,
    is_weekend,
    market_date,
    minutes_since_regular_open,
    session_at,
)


def _ts(y: int, m: int, d: int, h: int = 0, mi: int = 0) -> datetime:
    return datetime(y, m, d, h, mi, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# DST window
# ---------------------------------------------------------------------------


def test_dst_starts_second_sunday_of_march_at_0700_utc() -> None:
    assert is_dst(_ts(2024, 3, 10, 6, 59)) is False
    assert is_dst(_ts(2024, 3, 10, 7, 0)) is True


def test_dst_ends_first_sunday_of_november_at_0600_utc() -> None:
    assert is_dst(_ts(2024, 11, 3, 5, 59)) is True
    assert is_dst(_ts(2024, 11, 3, 6, 0)) is False


@pytest.mark.parametrize(
    "instant, expected",
    [
        (_ts(2024, 1, 15, 12), False),
        (_ts(2024, 7, 4, 12), True),
        (_ts(2024, 12, 25, 12), False),
        (_ts(2025, 3, 9, 7), True),  # 2025: second Sunday is March 9
        (_ts(2025, 11, 2, 5, 59), True),
        (_ts(2025, 11, 2, 6), False),
    ],
)
def test_is_dst_samples(instant: datetime, expected: bool) -> None:
    assert is_dst(instant) is expected


def test_naive_datetime_taken_as_utc() -> None:
    assert session_at(datetime(2024, 7, 4, 14, 0)).session is Session.REGULAR


# ---------------------------------------------------------------------------
# Weekend (US-Eastern calendar day)
# ---------------------------------------------------------------------------


def test_friday_evening_eastern_is_not_weekend() -> None:
    # 2024-12-07 04:00 UTC = Friday 23:00 EST
    assert is_weekend(_ts(2024, 12, 7, 4)) is False
    assert eastern_date(_ts(2024, 12, 7, 4)) == date(2024, 12, 6)


def test_saturday_eastern_midnight_is_weekend() -> None:
    assert is_weekend(_ts(2024, 12, 7, 5)) is True


def test_weekend_forces_closed_session() -> None:
    ms = session_at(_ts(2024, 12, 7, 15))  # Saturday, would be regular hours
    assert ms.is_weekend
    assert ms.session is Session.CLOSED
    assert not ms.can_submit_loo
    assert not ms.can_submit_loc
    assert ms.minutes_since_open is None


def test_monday_morning_display_time_is_still_sunday_eastern() -> None:
    # Monday 08:00 UTC+9 is Sunday 19:00 EDT
    assert is_weekend(_ts(2024, 7, 7, 23)) is True


# ---------------------------------------------------------------------------
# Session classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "instant, expected",
    [
        (_ts(2024, 7, 4, 8, 30), Session.PRE_MARKET),  # 17:30 display
        (_ts(2024, 7, 4, 14, 0), Session.REGULAR),  # 23:00
        (_ts(2024, 7, 4, 18, 0), Session.REGULAR),  # 03:00 next day
        (_ts(2024, 7, 4, 22, 0), Session.AFTER_MARKET),  # 07:00
        (_ts(2024, 7, 5, 1, 0), Session.CLOSED),  # 10:00
    ],
)
def test_dst_sessions(instant: datetime, expected: Session) -> None:
    ms = session_at(instant)
    assert ms.is_dst
    assert ms.session is expected


@pytest.mark.parametrize(
    "instant, expected",
    [
        (_ts(2024, 12, 5, 10, 0), Session.PRE_MARKET),  # 19:00
        (_ts(2024, 12, 5, 15, 0), Session.REGULAR),  # 00:00
        (_ts(2024, 12, 5, 23, 0), Session.AFTER_MARKET),  # 08:00
        (_ts(2024, 12, 5, 2, 0), Session.CLOSED),  # 11:00
    ],
)
def test_standard_sessions(instant: datetime, expected: Session) -> None:
    ms = session_at(instant)
    assert not ms.is_dst
    assert ms.session is expected


def test_boundaries_are_half_open() -> None:
    # DST regular open 22:30 display = 13:30 UTC
    assert session_at(_ts(2024, 7, 10, 13, 29)).session is Session.PRE_MARKET
    assert session_at(_ts(2024, 7, 10, 13, 30)).session is Session.REGULAR
    # DST regular close 05:00 display = 20:00 UTC
    assert session_at(_ts(2024, 7, 10, 19, 59)).session is Session.REGULAR
    assert session_at(_ts(2024, 7, 10, 20, 0)).session is Session.AFTER_MARKET


def test_dst_shifts_every_boundary_by_one_hour() -> None:
    for field in ("pre_market", "regular_open", "regular_close", "after_close"):
        assert getattr(STANDARD_BOUNDARIES, field) - getattr(DST_BOUNDARIES, field) == 60


def test_same_eastern_wall_clock_maps_to_same_session_across_dst() -> None:
    # 10:00 Eastern in July (14:00 UTC) and in December (15:00 UTC)
    summer = session_at(_ts(2024, 7, 10, 14))
    winter = session_at(_ts(2024, 12, 10, 15))
    assert summer.session is winter.session is Session.REGULAR
    assert summer.minutes_since_open == winter.minutes_since_open == 30


def test_display_minutes_wraps_midnight() -> None:
    assert display_minutes(_ts(2024, 7, 10, 15, 0)) == 0
    assert display_minutes(_ts(2024, 7, 10, 14, 59)) == 23 * 60 + 59


# ---------------------------------------------------------------------------
# Regular-session minutes and LOC grace
# ---------------------------------------------------------------------------


def test_minutes_since_open() -> None:
    assert minutes_since_regular_open(_ts(2024, 12, 5, 14, 30)) == 0
    assert minutes_since_regular_open(_ts(2024, 12, 5, 15, 0)) == 30
    assert minutes_since_regular_open(_ts(2024, 12, 5, 10, 0)) is None


def test_minutes_since_open_across_midnight() -> None:
    # DST: open 22:30 display, 02:00 display is 210 minutes in
    assert minutes_since_regular_open(_ts(2024, 7, 10, 17, 0)) == 210


def test_loc_grace_period() -> None:
    assert session_at(_ts(2024, 12, 6, 14, 40)).can_submit_loc is True
    assert session_at(_ts(2024, 12, 6, 14, 35)).can_submit_loc is False


def test_loo_only_in_pre_market() -> None:
    assert session_at(_ts(2024, 7, 10, 8, 30)).can_submit_loo is True
    assert session_at(_ts(2024, 7, 10, 14, 0)).can_submit_loo is False


@pytest.mark.parametrize(
    "order_type, instant, allowed, fragment",
    [
        (OrderType.LOO, _ts(2024, 7, 10, 8, 30), True, "Pre-market"),
        (OrderType.LOO, _ts(2024, 7, 10, 14, 0), False, "REGULAR"),
        (OrderType.LOC, _ts(2024, 7, 10, 13, 35), False, "wait 10 minutes"),
        (OrderType.LOC, _ts(2024, 7, 10, 14, 0), True, "Regular session"),
        (OrderType.LOC, _ts(2024, 7, 10, 22, 0), False, "AFTER_MARKET"),
        (OrderType.LIMIT, _ts(2024, 7, 11, 1, 0), True, "CLOSED"),
        (OrderType.LIMIT, _ts(2024, 12, 7, 15, 0), False, "Weekend"),
    ],
)
def test_can_submit(order_type: OrderType, instant: datetime, allowed: bool, fragment: str) -> None:
    ok, reason = can_submit(order_type, instant)
    assert ok is allowed
    assert fragment in reason


# ---------------------------------------------------------------------------
# Market date / formatting
# ---------------------------------------------------------------------------


def test_market_date_foreign_uses_eastern_day() -> None:
    # 03:00 display on the 11th is still the 10th in New York
    instant = _ts(2024, 7, 10, 18, 0)
    assert market_date(instant, Market.FOREIGN) == date(2024, 7, 10)
    assert market_date(instant, Market.DOMESTIC) == date(2024, 7, 11)


def test_regular_session_spans_one_market_date() -> None:
    open_at = _ts(2024, 7, 10, 13, 30)
    close_at = open_at + timedelta(hours=6, minutes=29)
    assert market_date(open_at) == market_date(close_at)


def test_format_minutes() -> None:
    assert format_minutes(22 * 60 + 30) == "22:30"
    assert format_minutes(5) == "00:05"
