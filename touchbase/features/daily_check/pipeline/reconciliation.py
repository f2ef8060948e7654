"""
Reconciliation pass.

Runs before anything else in the daily check: contacts that were due on the
owner's local today and have no interaction logged since their due day get
their miss count bumped, their due date pulled in, and their reminder replaced.
"""

from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from touchbase.infrastructure.observability.logging import get_logger
from touchbase.utils.dates import local_date, local_today_window, resolve_timezone

from ..domain.models import DEFAULT_CONTACT_METHOD, Contact, Reminder, UserContext
from ..repository.store import DailyCheckStore, StaleContactError
from .next_contact import next_contact_due

logger = get_logger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    checked: int = 0
    missed: int = 0
    attended: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "missed": self.missed,
            "attended": self.attended,
            "failed": self.failed,
            "errors": list(self.errors),
        }


class ReconciliationPass:
    """Detect missed outreach for contacts due today and reschedule them."""

    def __init__(self, store: DailyCheckStore):
        self.store = store

    async def run(self, now: datetime) -> ReconciliationReport:
        report = ReconciliationReport()

        start, end = local_today_window(now)
        candidates = await self.store.fetch_contacts_due_between(start, end)
        due_today = []
        if candidates:
            contexts = await self.store.fetch_user_contexts({c.user_id for c in candidates})
            due_today = self._due_on_local_today(candidates, contexts, now)

        if not due_today:
            logger.info("No contacts due today", candidates=len(candidates))
            return report

        logger.info("Reconciling contacts due today", contact_count=len(due_today))

        for contact, tz in due_today:
            report.checked += 1
            try:
                attended = await self._reconcile_contact(contact, tz, now)
            except Exception as e:
                # One bad contact must not stop the rest of the pass
                report.failed += 1
                report.errors.append({"contact_id": contact.id, "error": str(e)})
                logger.error(
                    "Failed to reconcile contact",
                    contact_id=contact.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if attended:
                report.attended += 1
            else:
                report.missed += 1

        logger.info("Reconciliation completed", **{k: v for k, v in report.to_dict().items() if k != "errors"})
        return report

    @staticmethod
    def _due_on_local_today(
        contacts: list[Contact], contexts: dict[str, UserContext], now: datetime
    ) -> list[tuple[Contact, tzinfo]]:
        """Keep contacts whose due date is today in their owner's timezone."""
        selected = []
        for contact in contacts:
            if contact.next_contact_due is None:
                continue
            context = contexts.get(contact.user_id) or UserContext(user_id=contact.user_id)
            tz = resolve_timezone(context.timezone)
            if local_date(contact.next_contact_due, tz) == local_date(now, tz):
                selected.append((contact, tz))
        return selected

    async def _reconcile_contact(self, contact: Contact, tz: tzinfo, now: datetime) -> bool:
        """Return True when an interaction covers the due day, otherwise record a miss."""
        due_day = local_date(contact.next_contact_due, tz)

        latest = await self.store.fetch_latest_interaction(contact.id)
        if latest is not None and local_date(latest.date, tz) >= due_day:
            return True

        await self._record_miss(contact, now)
        return False

    async def _record_miss(self, contact: Contact, now: datetime) -> None:
        missed = contact.missed_interactions + 1
        due = next_contact_due(
            contact.relationship_level,
            contact.contact_frequency,
            missed,
            reference_time=now,
            now=now,
        )
        reminder = Reminder(
            contact_id=contact.id,
            user_id=contact.user_id,
            due_date=due,
            type=contact.preferred_contact_method or DEFAULT_CONTACT_METHOD,
            description=contact.notes,
        )

        try:
            await self.store.apply_missed_interaction(contact, missed, due, reminder)
        except StaleContactError:
            logger.warning(
                "Contact changed during reconciliation, leaving it for the concurrent writer",
                contact_id=contact.id,
            )
            raise

        logger.info(
            "Recorded missed interaction",
            contact_id=contact.id,
            missed_interactions=missed,
            next_contact_due=due.isoformat(),
            reminder_type=reminder.type,
        )
