"""
Timezone-aware date helpers for the daily check.

Business logic never reads the wall clock: the job calls utc_now() once and
passes the value down, so every window below takes an explicit reference time.
"""

from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from touchbase.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(ts: datetime) -> datetime:
    """Treat naive timestamps coming out of the store as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def resolve_timezone(name: str | None) -> tzinfo:
    """Map an IANA name to a tzinfo, falling back to UTC for blanks and unknown names."""
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone, falling back to UTC", timezone=name)
        return UTC


def local_date(ts: datetime, tz: tzinfo = UTC) -> date:
    return ensure_aware(ts).astimezone(tz).date()


def start_of_day(ts: datetime, tz: tzinfo = UTC) -> datetime:
    """Midnight at the start of ts's calendar day in tz."""
    return datetime.combine(local_date(ts, tz), time.min, tzinfo=tz)


def end_of_day(ts: datetime, tz: tzinfo = UTC) -> datetime:
    """Last representable instant of ts's calendar day in tz (inclusive bound)."""
    return datetime.combine(local_date(ts, tz), time.max, tzinfo=tz)


def add_days(ts: datetime, days: int) -> datetime:
    return ensure_aware(ts) + timedelta(days=days)


def processing_date(now: datetime) -> date:
    """Calendar day (UTC) used as the processing ledger key."""
    return local_date(now, UTC)


def next_24h_window(now: datetime) -> tuple[datetime, datetime]:
    """Half-open [now, now + 24h) window for contacts due tomorrow."""
    start = ensure_aware(now)
    return start, start + DAY


# Widest UTC offsets in use are -12h and +14h
LOCAL_DAY_MARGIN = timedelta(hours=14)


def local_today_window(now: datetime) -> tuple[datetime, datetime]:
    """
    UTC bounds wide enough to hold "today" for an owner in any timezone.

    Callers still have to filter by each owner's local date; the window only
    guarantees nothing due on someone's local today falls outside it.
    """
    return start_of_day(now) - LOCAL_DAY_MARGIN, end_of_day(now) + LOCAL_DAY_MARGIN
