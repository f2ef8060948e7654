"""
Store interface consumed by the daily check pipeline.

The pipeline depends only on this protocol: equality filters, timestamp range
filters, a most-recent-interaction lookup, and upsert semantics on the
processing log. PostgresDailyCheckStore is the production implementation.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Protocol

from ..domain.models import Contact, Interaction, ProcessingLogEntry, Reminder, UserContext


class StaleContactError(Exception):
    """The contact changed between read and write; the missed-interaction update was not applied."""

    def __init__(self, contact_id: str):
        super().__init__(f"Contact {contact_id} was modified concurrently")
        self.contact_id = contact_id


class DailyCheckStore(Protocol):
    async def fetch_contacts_due_between(
        self, start: datetime, end: datetime, *, end_inclusive: bool = True
    ) -> list[Contact]: ...

    async def fetch_latest_interaction(self, contact_id: str) -> Interaction | None: ...

    async def fetch_recent_interactions(
        self, contact_id: str, limit: int = 10
    ) -> list[Interaction]: ...

    async def apply_missed_interaction(
        self,
        contact: Contact,
        missed_interactions: int,
        next_contact_due: datetime,
        reminder: Reminder,
    ) -> None:
        """
        Bump the miss count, reschedule, and replace the contact's reminders as
        one unit. Raises StaleContactError if the stored miss count no longer
        matches contact.missed_interactions.
        """
        ...

    async def update_contact_suggestion(
        self, contact_id: str, suggestion: str, suggested_at: datetime
    ) -> None: ...

    async def fetch_user_contexts(self, user_ids: Iterable[str]) -> dict[str, UserContext]: ...

    async def fetch_processing_logs(self, processing_date: date) -> list[ProcessingLogEntry]: ...

    async def fetch_processing_log(
        self, contact_id: str, processing_date: date
    ) -> ProcessingLogEntry | None: ...

    async def insert_processing_log_if_absent(self, entry: ProcessingLogEntry) -> bool:
        """Insert unless (contact_id, processing_date) exists. Returns True when inserted."""
        ...

    async def update_processing_log(self, entry: ProcessingLogEntry) -> None: ...
