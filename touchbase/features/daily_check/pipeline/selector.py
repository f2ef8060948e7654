"""
Due-tomorrow selector: contacts due in the next 24 hours that the ledger has
not already settled today.
"""

from dataclasses import dataclass, field
from datetime import datetime

from touchbase.infrastructure.observability.logging import get_logger
from touchbase.utils.dates import next_24h_window, processing_date

from ..domain.models import Contact
from ..repository.store import DailyCheckStore

logger = get_logger(__name__)


@dataclass(slots=True)
class Selection:
    candidates: list[Contact] = field(default_factory=list)
    work_list: list[Contact] = field(default_factory=list)
    skipped_contact_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.work_list


async def select_due_tomorrow(store: DailyCheckStore, now: datetime) -> Selection:
    """
    Build today's work list.

    Contacts due in [now, now + 24h) minus those whose ledger row for today's
    processing date is success or max_retries_exceeded.
    """
    window_start, window_end = next_24h_window(now)
    candidates = await store.fetch_contacts_due_between(
        window_start, window_end, end_inclusive=False
    )

    logger.info(
        "Found contacts due in the next 24h",
        contact_count=len(candidates),
        window_start=window_start.isoformat(),
        window_end=window_end.isoformat(),
    )

    if not candidates:
        return Selection()

    entries = await store.fetch_processing_logs(processing_date(now))
    settled = {entry.contact_id for entry in entries if entry.is_terminal}

    work_list = [c for c in candidates if c.id not in settled]
    skipped = [c.id for c in candidates if c.id in settled]

    if skipped:
        logger.info("Skipping contacts already settled today", skipped_count=len(skipped))

    return Selection(candidates=candidates, work_list=work_list, skipped_contact_ids=skipped)
