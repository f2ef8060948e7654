"""
Background jobs for the daily check feature.
"""

from .daily_check_job import (
    DailyCheckJob,
    DailyCheckJobError,
    run_daily_check,
    start_daily_check_scheduler,
)

__all__ = [
    "DailyCheckJob",
    "DailyCheckJobError",
    "run_daily_check",
    "start_daily_check_scheduler",
]
