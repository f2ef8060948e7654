"""
Daily check feature package.

Keeps every layer of the nightly pipeline together: domain models, the store
interface and its Postgres implementation, the reconciliation and selection
steps, the ledger-backed batch processor, and the job that wires them up.
"""

from .domain.models import BatchConfig, BatchResult, Contact  # noqa: F401
from .jobs.daily_check_job import (  # noqa: F401
    DailyCheckJob,
    run_daily_check,
    start_daily_check_scheduler,
)
