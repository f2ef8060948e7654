"""
Next-contact calculator.

Maps (relationship level, frequency, missed count) to the next due date:
base days per frequency, shortened for closer relationships, then shortened
again for every missed interaction.
"""

import math
from datetime import datetime

from touchbase.infrastructure.observability.logging import get_logger
from touchbase.utils.dates import add_days, ensure_aware

from ..domain.models import ContactFrequency

logger = get_logger(__name__)

DEFAULT_INTERVAL_DAYS = 7

BASE_INTERVAL_DAYS: dict[str, int] = {
    ContactFrequency.EVERY_THREE_DAYS: 3,
    ContactFrequency.WEEKLY: 7,
    ContactFrequency.FORTNIGHTLY: 14,
    ContactFrequency.MONTHLY: 30,
    ContactFrequency.QUARTERLY: 90,
}

MIN_LEVEL = 1
MAX_LEVEL = 5
LEVEL_STEP = 0.1
MISS_STEP = 0.2
MIN_URGENCY_MULTIPLIER = 0.3
MIN_INTERVAL_DAYS = 1


def _round_half_up(value: float) -> int:
    # round() uses banker's rounding; 4.5 days must become 5
    return math.floor(value + 0.5)


def base_interval_days(frequency: str | None) -> int:
    if frequency is None:
        return DEFAULT_INTERVAL_DAYS
    days = BASE_INTERVAL_DAYS.get(frequency)
    if days is None:
        logger.warning("Unknown contact frequency, using weekly", frequency=frequency)
        return DEFAULT_INTERVAL_DAYS
    return days


def closeness_multiplier(level: int) -> float:
    """1.0 for level 1 down to 0.6 for level 5. Out-of-range levels count as 1."""
    if not isinstance(level, int) or not MIN_LEVEL <= level <= MAX_LEVEL:
        level = MIN_LEVEL
    return 1 - (level - 1) * LEVEL_STEP


def urgency_multiplier(missed: int) -> float:
    return max(MIN_URGENCY_MULTIPLIER, 1 - missed * MISS_STEP)


def interval_days(level: int, frequency: str | None, missed: int = 0) -> int:
    """Number of days until the next outreach."""
    days = _round_half_up(base_interval_days(frequency) * closeness_multiplier(level))
    if missed > 0:
        days = max(MIN_INTERVAL_DAYS, _round_half_up(days * urgency_multiplier(missed)))
    return days


def next_contact_due(
    level: int,
    frequency: str | None,
    missed: int,
    reference_time: datetime,
    *,
    now: datetime | None = None,
) -> datetime:
    """
    Compute the next due timestamp.

    Args:
        level: relationship level 1..5
        frequency: ContactFrequency value or None (weekly)
        missed: consecutive missed interactions, 0 or more
        reference_time: timestamp the interval is added to
        now: when given, a result earlier than now is re-anchored to now + interval

    Returns:
        Aware datetime never earlier than now (if provided)
    """
    days = interval_days(level, frequency, max(0, missed))
    due = add_days(reference_time, days)
    if now is not None and due < ensure_aware(now):
        due = add_days(now, days)
    return due
