"""
Pipeline steps that run before the batch processor.
"""

from .next_contact import interval_days, next_contact_due
from .reconciliation import ReconciliationPass, ReconciliationReport
from .selector import Selection, select_due_tomorrow

__all__ = [
    "ReconciliationPass",
    "ReconciliationReport",
    "Selection",
    "interval_days",
    "next_contact_due",
    "select_due_tomorrow",
]
