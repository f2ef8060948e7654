import re
from dataclasses import replace
from datetime import UTC, date, datetime, timedelta

import pytest

from touchbase.db.helpers import DatabaseError
from touchbase.features.daily_check.domain.models import (
    BatchConfig,
    Contact,
    Interaction,
    ProcessingLogEntry,
    Reminder,
    UserContext,
)
from touchbase.features.daily_check.repository.store import StaleContactError

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)

_NAME_PATTERN = re.compile(r"^- Name: (.*)$", re.MULTILINE)


def premium_context(user_id: str) -> UserContext:
    return UserContext(
        user_id=user_id,
        plan_id="premium",
        valid_until=datetime(2100, 1, 1, tzinfo=UTC),
    )


class FakeStore:
    """In-memory DailyCheckStore. Hands out copies so callers can't share state with it."""

    def __init__(self):
        self.contacts: dict[str, Contact] = {}
        self.interactions: dict[str, list[Interaction]] = {}
        self.reminders: list[Reminder] = []
        self.logs: dict[tuple[str, date], ProcessingLogEntry] = {}
        self.user_contexts: dict[str, UserContext] = {}
        self.suggestion_writes: list[tuple[str, str]] = []
        self.fail_apply_for: set[str] = set()
        self.user_context_failures: list[Exception] = []

    # --- seeding helpers -------------------------------------------------

    def add_contact(self, contact: Contact) -> Contact:
        self.contacts[contact.id] = contact
        return contact

    def add_interaction(self, contact_id: str, when: datetime, type_: str = "call") -> None:
        self.interactions.setdefault(contact_id, []).append(Interaction(type=type_, date=when))

    def reminders_for(self, contact_id: str) -> list[Reminder]:
        return [r for r in self.reminders if r.contact_id == contact_id]

    def log_for(self, contact_id: str, day: date) -> ProcessingLogEntry | None:
        return self.logs.get((contact_id, day))

    # --- DailyCheckStore -------------------------------------------------

    async def fetch_contacts_due_between(self, start, end, *, end_inclusive=True):
        def in_window(contact: Contact) -> bool:
            due = contact.next_contact_due
            if due is None or due < start:
                return False
            return due <= end if end_inclusive else due < end

        due = [replace(c) for c in self.contacts.values() if in_window(c)]
        return sorted(due, key=lambda c: (c.next_contact_due, c.id))

    async def fetch_latest_interaction(self, contact_id):
        items = self.interactions.get(contact_id, [])
        return max(items, key=lambda i: i.date) if items else None

    async def fetch_recent_interactions(self, contact_id, limit=10):
        items = sorted(self.interactions.get(contact_id, []), key=lambda i: i.date, reverse=True)
        return items[:limit]

    async def apply_missed_interaction(self, contact, missed_interactions, next_contact_due, reminder):
        if contact.id in self.fail_apply_for:
            raise DatabaseError("connection reset", operation="apply_missed_interaction")
        stored = self.contacts[contact.id]
        if stored.missed_interactions != contact.missed_interactions:
            raise StaleContactError(contact.id)
        stored.missed_interactions = missed_interactions
        stored.next_contact_due = next_contact_due
        self.reminders = [r for r in self.reminders if r.contact_id != contact.id]
        self.reminders.append(reminder)

    async def update_contact_suggestion(self, contact_id, suggestion, suggested_at):
        stored = self.contacts[contact_id]
        stored.ai_last_suggestion = suggestion
        stored.ai_last_suggestion_date = suggested_at
        self.suggestion_writes.append((contact_id, suggestion))

    async def fetch_user_contexts(self, user_ids):
        if self.user_context_failures:
            raise self.user_context_failures.pop(0)
        return {
            user_id: replace(self.user_contexts.get(user_id) or premium_context(user_id))
            for user_id in user_ids
        }

    async def fetch_processing_logs(self, processing_date):
        return [replace(e) for (cid, day), e in self.logs.items() if day == processing_date]

    async def fetch_processing_log(self, contact_id, processing_date):
        entry = self.logs.get((contact_id, processing_date))
        return replace(entry) if entry else None

    async def insert_processing_log_if_absent(self, entry):
        key = (entry.contact_id, entry.processing_date)
        if key in self.logs:
            return False
        self.logs[key] = replace(entry)
        return True

    async def update_processing_log(self, entry):
        self.logs[(entry.contact_id, entry.processing_date)] = replace(entry)


class FakeSuggestionClient:
    """
    Scripted generator keyed by contact name. Each scripted item is either a
    string to return or an exception to raise; once a script runs out the
    default text is returned.
    """

    def __init__(self, default: str = "[type: call] Ask how the new job is going"):
        self.default = default
        self.scripts: dict[str, list] = {}
        self.calls: list[str] = []

    def script(self, name: str, *items) -> None:
        self.scripts.setdefault(name, []).extend(items)

    def calls_for(self, name: str) -> int:
        return self.calls.count(name)

    async def generate(self, prompt: str) -> str:
        match = _NAME_PATTERN.search(prompt)
        name = match.group(1) if match else ""
        self.calls.append(name)
        script = self.scripts.get(name)
        if script:
            item = script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return self.default


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested seconds without waiting."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ZeroJitter:
    def uniform(self, a: float, b: float) -> float:
        return a


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def suggestion_client() -> FakeSuggestionClient:
    return FakeSuggestionClient()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def batch_config() -> BatchConfig:
    return BatchConfig()


@pytest.fixture
def zero_jitter() -> ZeroJitter:
    return ZeroJitter()


@pytest.fixture
def make_contact(store):
    counter = {"n": 0}

    def _make(
        *,
        due: datetime | None = None,
        name: str | None = None,
        level: int = 3,
        frequency: str | None = "weekly",
        missed: int = 0,
        user_id: str = "user-1",
        preferred: str | None = None,
        notes: str | None = None,
    ) -> Contact:
        counter["n"] += 1
        n = counter["n"]
        return store.add_contact(
            Contact(
                id=f"contact-{n}",
                user_id=user_id,
                name=name or f"Friend {n}",
                relationship_level=level,
                contact_frequency=frequency,
                missed_interactions=missed,
                next_contact_due=due if due is not None else NOW + timedelta(hours=6),
                preferred_contact_method=preferred,
                notes=notes,
            )
        )

    return _make
