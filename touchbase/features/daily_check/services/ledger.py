"""
Processing ledger: one contact_processing_logs row per contact per day.

The ledger answers "has this contact been handled today" for both the
selector and the batch processor, and carries the cross-run retry count.

    (absent) -> pending -> success                  (terminal)
                        -> error -> pending ...     (while under MAX_RETRY_ATTEMPTS)
                        -> max_retries_exceeded     (terminal)
"""

from datetime import date

from touchbase.infrastructure.observability.logging import get_logger

from ..domain.models import MAX_RETRY_ATTEMPTS, ProcessingLogEntry, ProcessingStatus
from ..repository.store import DailyCheckStore

logger = get_logger(__name__)

MAX_RETRIES_EXCEEDED_MESSAGE = "max retries exceeded"


class LedgerError(Exception):
    """Raised when a ledger row cannot be read back after an upsert."""

    def __init__(self, message: str, contact_id: str | None = None):
        super().__init__(message)
        self.contact_id = contact_id


class ProcessingLedger:
    def __init__(self, store: DailyCheckStore, max_attempts: int = MAX_RETRY_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    async def load_for_date(self, day: date) -> dict[str, ProcessingLogEntry]:
        entries = await self.store.fetch_processing_logs(day)
        return {entry.contact_id: entry for entry in entries}

    async def get_or_create(self, contact_id: str, day: date) -> tuple[ProcessingLogEntry, bool]:
        """
        Fetch today's row for the contact, inserting a pending row if none exists.

        Returns:
            (entry, created) where created is False if another run or an
            earlier run today already owns the row
        """
        existing = await self.store.fetch_processing_log(contact_id, day)
        if existing is not None:
            return existing, False

        entry = ProcessingLogEntry(
            contact_id=contact_id, processing_date=day, status=ProcessingStatus.PENDING
        )
        if await self.store.insert_processing_log_if_absent(entry):
            return entry, True

        # Lost the insert race to a concurrent run
        existing = await self.store.fetch_processing_log(contact_id, day)
        if existing is None:
            raise LedgerError("Processing log vanished after conflicting insert", contact_id)
        return existing, False

    def attempts_made(self, entry: ProcessingLogEntry) -> int:
        """Attempts already spent today on a non-terminal row that predates this run."""
        return entry.retry_count + 1

    def is_exhausted(self, entry: ProcessingLogEntry, created: bool = False) -> bool:
        if entry.status == ProcessingStatus.MAX_RETRIES_EXCEEDED:
            return True
        if created or entry.status == ProcessingStatus.SUCCESS:
            return False
        return self.attempts_made(entry) >= self.max_attempts

    async def mark_pending(
        self, entry: ProcessingLogEntry, batch_id: str, *, reattempt: bool
    ) -> ProcessingLogEntry:
        entry.status = ProcessingStatus.PENDING
        entry.batch_id = batch_id
        if reattempt:
            entry.retry_count += 1
        await self.store.update_processing_log(entry)
        return entry

    async def mark_success(self, entry: ProcessingLogEntry) -> ProcessingLogEntry:
        entry.status = ProcessingStatus.SUCCESS
        entry.last_error = None
        await self.store.update_processing_log(entry)
        return entry

    async def mark_error(self, entry: ProcessingLogEntry, message: str) -> ProcessingLogEntry:
        """Record a failed attempt; the attempt that reaches the ceiling closes the day."""
        entry.last_error = message
        if self.attempts_made(entry) >= self.max_attempts:
            entry.status = ProcessingStatus.MAX_RETRIES_EXCEEDED
            logger.warning(
                "Contact reached the daily retry ceiling",
                contact_id=entry.contact_id,
                retry_count=entry.retry_count,
                max_attempts=self.max_attempts,
            )
        else:
            entry.status = ProcessingStatus.ERROR
        await self.store.update_processing_log(entry)
        return entry

    async def mark_max_retries_exceeded(self, entry: ProcessingLogEntry) -> ProcessingLogEntry:
        entry.status = ProcessingStatus.MAX_RETRIES_EXCEEDED
        if not entry.last_error:
            entry.last_error = MAX_RETRIES_EXCEEDED_MESSAGE
        await self.store.update_processing_log(entry)
        return entry
