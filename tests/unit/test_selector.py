from datetime import timedelta

import pytest

from touchbase.features.daily_check.domain.models import ProcessingLogEntry, ProcessingStatus
from touchbase.features.daily_check.pipeline.selector import select_due_tomorrow
from touchbase.utils.dates import processing_date


@pytest.mark.asyncio
async def test_window_is_half_open(store, make_contact, now):
    at_now = make_contact(due=now)
    inside = make_contact(due=now + timedelta(hours=23, minutes=59))
    at_end = make_contact(due=now + timedelta(hours=24))
    before = make_contact(due=now - timedelta(minutes=1))

    selection = await select_due_tomorrow(store, now)

    ids = [c.id for c in selection.candidates]
    assert ids == [at_now.id, inside.id]
    assert at_end.id not in ids
    assert before.id not in ids


@pytest.mark.asyncio
async def test_settled_contacts_are_skipped(store, make_contact, now):
    done = make_contact(due=now + timedelta(hours=1))
    exhausted = make_contact(due=now + timedelta(hours=2))
    failed_once = make_contact(due=now + timedelta(hours=3))
    stuck = make_contact(due=now + timedelta(hours=4))
    fresh = make_contact(due=now + timedelta(hours=5))

    day = processing_date(now)
    for contact, status in [
        (done, ProcessingStatus.SUCCESS),
        (exhausted, ProcessingStatus.MAX_RETRIES_EXCEEDED),
        (failed_once, ProcessingStatus.ERROR),
        (stuck, ProcessingStatus.PENDING),
    ]:
        await store.insert_processing_log_if_absent(ProcessingLogEntry(contact.id, day, status))

    selection = await select_due_tomorrow(store, now)

    assert len(selection.candidates) == 5
    assert [c.id for c in selection.work_list] == [failed_once.id, stuck.id, fresh.id]
    assert selection.skipped_contact_ids == [done.id, exhausted.id]


@pytest.mark.asyncio
async def test_yesterdays_ledger_does_not_block_today(store, make_contact, now):
    contact = make_contact(due=now + timedelta(hours=1))
    yesterday = processing_date(now - timedelta(days=1))
    await store.insert_processing_log_if_absent(
        ProcessingLogEntry(contact.id, yesterday, ProcessingStatus.SUCCESS)
    )

    selection = await select_due_tomorrow(store, now)

    assert [c.id for c in selection.work_list] == [contact.id]


@pytest.mark.asyncio
async def test_nothing_due(store, now):
    selection = await select_due_tomorrow(store, now)

    assert selection.candidates == []
    assert selection.is_empty
