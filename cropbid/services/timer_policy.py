"""Session deadlines.

A session closes at the very end of the last calendar day of its harvesting
month (UTC). Nothing ever writes an "ended" status: whether a session is still
open is decided from the stored ``end_time`` whenever someone reads or writes it.
"""

import calendar
from datetime import datetime, timezone

from cropbid.core.errors import InvalidInput
from cropbid.schemas.session import BiddingSessionState, SessionStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_harvest_period(value: str) -> tuple[int, int]:
    """Parse ``YYYY-MM`` into ``(year, month)``."""
    try:
        year_part, month_part = value.strip().split("-")
        year, month = int(year_part), int(month_part)
    except (AttributeError, ValueError):
        raise InvalidInput(f"Invalid harvest period {value!r}, expected YYYY-MM")

    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise InvalidInput(f"Invalid harvest period {value!r}, expected YYYY-MM")
    return year, month


def end_of_month(year: int, month: int) -> datetime:
    """Last instant of the last day of the month."""
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)


def compute_end_time(harvest_period: str, now: datetime) -> datetime:
    """
    End time for a session created at ``now`` for the given harvesting month.

    Raises:
        InvalidInput: if the period is unparsable or its month is already over
    """
    year, month = parse_harvest_period(harvest_period)
    end_time = end_of_month(year, month)
    if end_time < ensure_utc(now):
        raise InvalidInput(f"Harvest period {harvest_period} is in the past")
    return end_time


def is_expired(session: BiddingSessionState, now: datetime) -> bool:
    return ensure_utc(now) > ensure_utc(session.end_time)


def is_open(session: BiddingSessionState, now: datetime) -> bool:
    """True while the session still accepts new and revised bids."""
    return session.status == SessionStatus.ONGOING and not is_expired(session, now)


def remaining_seconds(session: BiddingSessionState, now: datetime) -> float:
    remaining = (ensure_utc(session.end_time) - ensure_utc(now)).total_seconds()
    return max(remaining, 0.0)
