"""
Market session clock: instant -> trading session and order-type eligibility.

Session boundaries are expressed in the operator's display timezone (fixed
UTC+9, minutes since midnight). The US daylight-saving window is derived
arithmetically from UTC, without a timezone database:

  DST starts: second Sunday of March, 02:00 US-Eastern (07:00 UTC)
  DST ends:   first Sunday of November, 02:00 US-Eastern (06:00 UTC)

Display-time boundaries (DST / standard):
  pre-market     17:00 / 18:00
  regular open   22:30 / 23:30   (regular session wraps past midnight)
  regular close  05:00 / 06:00
  after-market   09:00 / 10:00

All intervals are half-open [start, end). Weekends follow the US-Eastern
calendar day. Pure: the instant is always passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from strategy_core.contracts import Market, OrderType

DISPLAY_UTC_OFFSET_MINUTES = 9 * 60
MINUTES_PER_DAY = 24 * 60
LOC_GRACE_MINUTES = 10

DST_START_UTC_HOUR = 7
DST_END_UTC_HOUR = 6


class Session(str, Enum):
    CLOSED = "CLOSED"
    PRE_MARKET = "PRE_MARKET"
    REGULAR = "REGULAR"
    AFTER_MARKET = "AFTER_MARKET"


@dataclass(frozen=True)
class SessionBoundaries:
    """Display-timezone minutes since midnight."""

    pre_market: int
    regular_open: int
    regular_close: int
    after_close: int


DST_BOUNDARIES = SessionBoundaries(
    pre_market=17 * 60,
    regular_open=22 * 60 + 30,
    regular_close=5 * 60,
    after_close=9 * 60,
)
STANDARD_BOUNDARIES = SessionBoundaries(
    pre_market=18 * 60,
    regular_open=23 * 60 + 30,
    regular_close=6 * 60,
    after_close=10 * 60,
)


@dataclass(frozen=True)
class MarketSession:
    at: datetime
    session: Session
    is_dst: bool
    is_weekend: bool
    can_submit_loo: bool
    can_submit_loc: bool
    minutes_since_open: int | None
    boundaries: SessionBoundaries

    @property
    def is_open(self) -> bool:
        return self.session is not Session.CLOSED


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _nth_sunday(year: int, month: int, n: int) -> int:
    """Day of month of the n-th Sunday."""
    first = date(year, month, 1)
    sunday_based = (first.weekday() + 1) % 7  # Sunday=0
    first_sunday = 1 + (7 - sunday_based) % 7
    return first_sunday + 7 * (n - 1)


def is_dst(instant: datetime) -> bool:
    u = _utc(instant)
    start = datetime(u.year, 3, _nth_sunday(u.year, 3, 2), DST_START_UTC_HOUR, tzinfo=timezone.utc)
    end = datetime(u.year, 11, _nth_sunday(u.year, 11, 1), DST_END_UTC_HOUR, tzinfo=timezone.utc)
    return start <= u < end


def eastern_date(instant: datetime) -> date:
    """US-Eastern calendar day (UTC-4 in DST, UTC-5 otherwise)."""
    u = _utc(instant)
    offset = -4 if is_dst(u) else -5
    return (u + timedelta(hours=offset)).date()


def display_time(instant: datetime) -> datetime:
    return _utc(instant) + timedelta(minutes=DISPLAY_UTC_OFFSET_MINUTES)


def display_minutes(instant: datetime) -> int:
    local = display_time(instant)
    return local.hour * 60 + local.minute


def is_weekend(instant: datetime) -> bool:
    return eastern_date(instant).weekday() >= 5


def market_date(instant: datetime, market: Market = Market.FOREIGN) -> date:
    """Trading day the instant belongs to, in the market's home calendar."""
    if market is Market.DOMESTIC:
        return display_time(instant).date()
    return eastern_date(instant)


def boundaries_for(instant: datetime) -> SessionBoundaries:
    return DST_BOUNDARIES if is_dst(instant) else STANDARD_BOUNDARIES


def _classify(minute: int, b: SessionBoundaries) -> Session:
    if b.pre_market <= minute < b.regular_open:
        return Session.PRE_MARKET
    if minute >= b.regular_open or minute < b.regular_close:
        return Session.REGULAR
    if b.regular_close <= minute < b.after_close:
        return Session.AFTER_MARKET
    return Session.CLOSED


def _minutes_since_open(minute: int, b: SessionBoundaries) -> int | None:
    if minute >= b.regular_open:
        return minute - b.regular_open
    if minute < b.regular_close:
        return (MINUTES_PER_DAY - b.regular_open + minute) % MINUTES_PER_DAY
    return None


def session_at(instant: datetime) -> MarketSession:
    """Evaluate the session at *instant*. Naive datetimes are taken as UTC."""
    u = _utc(instant)
    dst = is_dst(u)
    b = DST_BOUNDARIES if dst else STANDARD_BOUNDARIES
    weekend = is_weekend(u)
    minute = display_minutes(u)

    session = Session.CLOSED if weekend else _classify(minute, b)
    since_open = _minutes_since_open(minute, b) if session is Session.REGULAR else None
    return MarketSession(
        at=u,
        session=session,
        is_dst=dst,
        is_weekend=weekend,
        can_submit_loo=session is Session.PRE_MARKET,
        can_submit_loc=since_open is not None and since_open >= LOC_GRACE_MINUTES,
        minutes_since_open=since_open,
        boundaries=b,
    )


def minutes_since_regular_open(instant: datetime) -> int | None:
    """Minutes elapsed in the regular session, or None outside it."""
    return session_at(instant).minutes_since_open


def can_submit(order_type: OrderType, instant: datetime) -> tuple[bool, str]:
    """Eligibility of *order_type* at *instant* plus a human-readable reason."""
    ms = session_at(instant)
    if ms.is_weekend:
        return False, "Weekend: US market closed"
    if order_type is OrderType.LOO:
        if ms.can_submit_loo:
            return True, "Pre-market: LOO orders accepted"
        return False, f"LOO orders only accepted in pre-market (now {ms.session.value})"
    if order_type is OrderType.LOC:
        if ms.can_submit_loc:
            return True, "Regular session: LOC orders accepted"
        if ms.session is Session.REGULAR:
            return False, (
                f"LOC orders wait {LOC_GRACE_MINUTES} minutes after the open "
                f"({ms.minutes_since_open} elapsed)"
            )
        return False, f"LOC orders only accepted in the regular session (now {ms.session.value})"
    return True, f"Limit orders accepted (now {ms.session.value})"


def format_minutes(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"
