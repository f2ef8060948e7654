"""
Domain subpackage for the daily check feature.
"""

from .models import (
    MAX_RETRY_ATTEMPTS,
    BatchConfig,
    BatchError,
    BatchResult,
    Contact,
    ContactFrequency,
    ContactOutcome,
    Interaction,
    OutcomeStatus,
    ProcessingLogEntry,
    ProcessingStatus,
    Reminder,
    UserContext,
)

__all__ = [
    "MAX_RETRY_ATTEMPTS",
    "BatchConfig",
    "BatchError",
    "BatchResult",
    "Contact",
    "ContactFrequency",
    "ContactOutcome",
    "Interaction",
    "OutcomeStatus",
    "ProcessingLogEntry",
    "ProcessingStatus",
    "Reminder",
    "UserContext",
]
