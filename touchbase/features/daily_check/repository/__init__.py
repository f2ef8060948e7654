"""
Repository subpackage for the daily check feature.
"""

from .postgres_store import PostgresDailyCheckStore, postgres_daily_check_store
from .store import DailyCheckStore, StaleContactError

__all__ = [
    "DailyCheckStore",
    "PostgresDailyCheckStore",
    "StaleContactError",
    "postgres_daily_check_store",
]
