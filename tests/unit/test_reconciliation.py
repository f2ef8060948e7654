from datetime import UTC, datetime, timedelta

import pytest

from touchbase.features.daily_check.domain.models import DEFAULT_CONTACT_METHOD, Reminder, UserContext
from touchbase.features.daily_check.pipeline.reconciliation import ReconciliationPass


@pytest.mark.asyncio
async def test_contact_with_interaction_today_is_untouched(store, make_contact, now):
    due = now - timedelta(hours=2)
    contact = make_contact(due=due, missed=1)
    store.add_interaction(contact.id, now - timedelta(hours=1))

    report = await ReconciliationPass(store).run(now)

    assert report.checked == 1
    assert report.attended == 1
    assert report.missed == 0
    assert store.contacts[contact.id].missed_interactions == 1
    assert store.contacts[contact.id].next_contact_due == due
    assert store.reminders == []


@pytest.mark.asyncio
async def test_missed_contact_is_rescheduled_with_one_reminder(store, make_contact, now):
    contact = make_contact(
        due=now - timedelta(hours=2),
        level=1,
        frequency="monthly",
        preferred="call",
        notes="Ask about the marathon",
    )
    store.reminders.append(
        Reminder(contact.id, contact.user_id, now - timedelta(hours=2), "message", "old")
    )

    report = await ReconciliationPass(store).run(now)

    assert report.missed == 1
    stored = store.contacts[contact.id]
    assert stored.missed_interactions == 1
    assert stored.next_contact_due == now + timedelta(days=24)

    reminders = store.reminders_for(contact.id)
    assert len(reminders) == 1
    assert reminders[0].due_date == stored.next_contact_due
    assert reminders[0].type == "call"
    assert reminders[0].description == "Ask about the marathon"


@pytest.mark.asyncio
async def test_reminder_type_defaults_to_message(store, make_contact, now):
    contact = make_contact(due=now - timedelta(hours=1))

    await ReconciliationPass(store).run(now)

    assert store.reminders_for(contact.id)[0].type == DEFAULT_CONTACT_METHOD


@pytest.mark.asyncio
async def test_interaction_from_yesterday_counts_as_missed(store, make_contact, now):
    contact = make_contact(due=now - timedelta(hours=1), level=3, frequency="weekly", missed=1)
    store.add_interaction(contact.id, now - timedelta(days=1))

    report = await ReconciliationPass(store).run(now)

    assert report.missed == 1
    stored = store.contacts[contact.id]
    assert stored.missed_interactions == 2
    assert stored.next_contact_due == now + timedelta(days=4)


@pytest.mark.asyncio
async def test_contacts_due_on_other_days_are_ignored(store, make_contact, now):
    tomorrow = make_contact(due=now + timedelta(days=1))
    yesterday = make_contact(due=now - timedelta(days=1))

    report = await ReconciliationPass(store).run(now)

    assert report.checked == 0
    assert store.contacts[tomorrow.id].missed_interactions == 0
    assert store.contacts[yesterday.id].missed_interactions == 0


@pytest.mark.asyncio
async def test_failure_on_one_contact_does_not_stop_the_pass(store, make_contact, now):
    broken = make_contact(due=now - timedelta(hours=3))
    healthy = make_contact(due=now - timedelta(hours=2))
    store.fail_apply_for.add(broken.id)

    report = await ReconciliationPass(store).run(now)

    assert report.failed == 1
    assert report.missed == 1
    assert report.errors[0]["contact_id"] == broken.id
    # The failed write left no partial state behind
    assert store.contacts[broken.id].missed_interactions == 0
    assert store.reminders_for(broken.id) == []
    assert store.contacts[healthy.id].missed_interactions == 1


@pytest.mark.asyncio
async def test_concurrent_change_is_not_double_counted(store, make_contact, now):
    contact = make_contact(due=now - timedelta(hours=2))
    snapshot = (await store.fetch_contacts_due_between(now - timedelta(hours=9), now))[0]
    # Another writer bumps the counter after our snapshot was taken
    store.contacts[contact.id].missed_interactions = 1

    original_fetch = store.fetch_contacts_due_between

    async def stale_fetch(start, end, *, end_inclusive=True):
        await original_fetch(start, end, end_inclusive=end_inclusive)
        return [snapshot]

    store.fetch_contacts_due_between = stale_fetch

    report = await ReconciliationPass(store).run(now)

    assert report.failed == 1
    assert store.contacts[contact.id].missed_interactions == 1
    assert store.reminders == []


@pytest.mark.asyncio
async def test_due_check_uses_owner_timezone(store, make_contact):
    # 03:00 UTC is still the evening of Oct 16 in Los Angeles
    now = datetime(2026, 10, 17, 3, 0, tzinfo=UTC)
    contact = make_contact(due=datetime(2026, 10, 17, 20, 0, tzinfo=UTC), user_id="user-la")
    store.user_contexts["user-la"] = UserContext(user_id="user-la", timezone="America/Los_Angeles")

    report = await ReconciliationPass(store).run(now)

    assert report.checked == 0
    assert store.contacts[contact.id].missed_interactions == 0


@pytest.mark.asyncio
async def test_owner_behind_utc_is_reconciled_on_their_local_due_day(store, make_contact):
    # Due Oct 17 13:00 in Los Angeles, which is still Oct 17 locally at 03:00 UTC on Oct 18
    due = datetime(2026, 10, 17, 20, 0, tzinfo=UTC)
    contact = make_contact(due=due, user_id="user-la", level=3, frequency="weekly")
    store.user_contexts["user-la"] = UserContext(user_id="user-la", timezone="America/Los_Angeles")

    runs = [datetime(2026, 10, day, 3, 0, tzinfo=UTC) for day in (17, 18, 19)]
    reports = [await ReconciliationPass(store).run(run_at) for run_at in runs]

    assert [r.missed for r in reports] == [0, 1, 0]
    stored = store.contacts[contact.id]
    assert stored.missed_interactions == 1
    assert stored.next_contact_due == runs[1] + timedelta(days=5)
    assert stored.next_contact_due > runs[-1]
    assert len(store.reminders_for(contact.id)) == 1


@pytest.mark.asyncio
async def test_owner_ahead_of_utc_is_reconciled_before_the_utc_day_starts(store, make_contact):
    # 09:00 UTC on Oct 17 is 22:00 in Auckland; the contact was due there at 01:00 that morning
    now = datetime(2026, 10, 17, 9, 0, tzinfo=UTC)
    contact = make_contact(due=datetime(2026, 10, 16, 12, 0, tzinfo=UTC), user_id="user-nz")
    store.user_contexts["user-nz"] = UserContext(user_id="user-nz", timezone="Pacific/Auckland")

    report = await ReconciliationPass(store).run(now)

    assert report.missed == 1
    assert store.contacts[contact.id].missed_interactions == 1


@pytest.mark.asyncio
async def test_evening_interaction_on_the_local_due_day_counts_as_attended(store, make_contact):
    # Due Oct 16 19:00 and contacted Oct 16 21:00 in Los Angeles, both already Oct 17 in UTC
    now = datetime(2026, 10, 17, 5, 0, tzinfo=UTC)
    due = datetime(2026, 10, 17, 2, 0, tzinfo=UTC)
    contact = make_contact(due=due, user_id="user-la")
    store.user_contexts["user-la"] = UserContext(user_id="user-la", timezone="America/Los_Angeles")
    store.add_interaction(contact.id, datetime(2026, 10, 17, 4, 0, tzinfo=UTC))

    report = await ReconciliationPass(store).run(now)

    assert report.attended == 1
    assert report.missed == 0
    assert store.contacts[contact.id].missed_interactions == 0
    assert store.contacts[contact.id].next_contact_due == due
    assert store.reminders == []


@pytest.mark.asyncio
async def test_interaction_before_the_local_due_day_does_not_count(store, make_contact):
    # Contacted Oct 16 16:00 in Los Angeles (Oct 16 UTC), due Oct 17 local
    now = datetime(2026, 10, 18, 3, 0, tzinfo=UTC)
    contact = make_contact(due=datetime(2026, 10, 17, 20, 0, tzinfo=UTC), user_id="user-la")
    store.user_contexts["user-la"] = UserContext(user_id="user-la", timezone="America/Los_Angeles")
    store.add_interaction(contact.id, datetime(2026, 10, 16, 23, 0, tzinfo=UTC))

    report = await ReconciliationPass(store).run(now)

    assert report.missed == 1


@pytest.mark.asyncio
async def test_second_pass_on_same_day_changes_nothing(store, make_contact, now):
    contact = make_contact(due=now - timedelta(hours=2))

    await ReconciliationPass(store).run(now)
    second = await ReconciliationPass(store).run(now + timedelta(minutes=30))

    assert second.checked == 0
    assert store.contacts[contact.id].missed_interactions == 1
    assert len(store.reminders_for(contact.id)) == 1
