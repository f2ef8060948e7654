"""
Postgres implementation of the daily check store.

Raw SQL over the Supabase tables (contacts, interactions, reminders,
contact_processing_logs, user_preferences, subscriptions) using the shared
psycopg helpers.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

import psycopg

from touchbase.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from touchbase.db.pool import get_db_transaction
from touchbase.infrastructure.observability.logging import get_logger

from ..domain.models import (
    Contact,
    Interaction,
    ProcessingLogEntry,
    ProcessingStatus,
    Reminder,
    UserContext,
)
from .store import StaleContactError

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 500

_CONTACT_COLUMNS = """
    id::text AS id,
    user_id::text AS user_id,
    name,
    relationship_level,
    contact_frequency,
    COALESCE(missed_interactions, 0) AS missed_interactions,
    next_contact_due,
    last_contacted,
    preferred_contact_method,
    notes,
    ai_last_suggestion,
    ai_last_suggestion_date
"""


def _contact_from_row(row: dict[str, Any]) -> Contact:
    return Contact(
        id=row["id"],
        user_id=row["user_id"],
        name=row.get("name") or "",
        relationship_level=row.get("relationship_level") or 1,
        contact_frequency=row.get("contact_frequency"),
        missed_interactions=row.get("missed_interactions") or 0,
        next_contact_due=row.get("next_contact_due"),
        last_contacted=row.get("last_contacted"),
        preferred_contact_method=row.get("preferred_contact_method"),
        notes=row.get("notes"),
        ai_last_suggestion=row.get("ai_last_suggestion"),
        ai_last_suggestion_date=row.get("ai_last_suggestion_date"),
    )


def _log_from_row(row: dict[str, Any]) -> ProcessingLogEntry:
    return ProcessingLogEntry(
        contact_id=row["contact_id"],
        processing_date=row["processing_date"],
        status=ProcessingStatus(row["status"]),
        retry_count=row.get("retry_count") or 0,
        batch_id=row.get("batch_id"),
        last_error=row.get("last_error"),
    )


class PostgresDailyCheckStore:
    """Persistence for the daily check pipeline."""

    async def fetch_contacts_due_between(
        self, start: datetime, end: datetime, *, end_inclusive: bool = True
    ) -> list[Contact]:
        upper = "<=" if end_inclusive else "<"
        query = f"""
            SELECT {_CONTACT_COLUMNS}
            FROM contacts
            WHERE next_contact_due >= %s
              AND next_contact_due {upper} %s
            ORDER BY next_contact_due ASC, id ASC
        """
        rows = await fetch_all(query, (start, end))
        return [_contact_from_row(row) for row in rows]

    async def fetch_latest_interaction(self, contact_id: str) -> Interaction | None:
        query = """
            SELECT type, date, sentiment
            FROM interactions
            WHERE contact_id = %s
            ORDER BY date DESC
            LIMIT 1
        """
        row = await fetch_one(query, (contact_id,))
        if not row:
            return None
        return Interaction(type=row["type"], date=row["date"], sentiment=row.get("sentiment"))

    async def fetch_recent_interactions(self, contact_id: str, limit: int = 10) -> list[Interaction]:
        query = """
            SELECT type, date, sentiment
            FROM interactions
            WHERE contact_id = %s
            ORDER BY date DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (contact_id, limit))
        return [
            Interaction(type=row["type"], date=row["date"], sentiment=row.get("sentiment"))
            for row in rows
        ]

    async def apply_missed_interaction(
        self,
        contact: Contact,
        missed_interactions: int,
        next_contact_due: datetime,
        reminder: Reminder,
    ) -> None:
        try:
            async with await get_db_transaction() as conn:
                updated = await execute_query(
                    """
                    UPDATE contacts
                    SET missed_interactions = %s,
                        next_contact_due = %s,
                        updated_at = NOW()
                    WHERE id = %s
                      AND COALESCE(missed_interactions, 0) = %s
                    """,
                    (missed_interactions, next_contact_due, contact.id, contact.missed_interactions),
                    connection=conn,
                )
                if updated == 0:
                    # Rolls back the transaction
                    raise StaleContactError(contact.id)

                await execute_query(
                    "DELETE FROM reminders WHERE contact_id = %s",
                    (contact.id,),
                    connection=conn,
                )
                await execute_query(
                    """
                    INSERT INTO reminders (contact_id, user_id, type, due_date, description)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (
                        reminder.contact_id,
                        reminder.user_id,
                        reminder.type,
                        reminder.due_date,
                        reminder.description,
                    ),
                    connection=conn,
                )
        except DatabaseError as e:
            # Statement failures arrive already wrapped by the helpers
            logger.error("Missed interaction transaction failed", contact_id=contact.id, error=str(e))
            raise DatabaseError(
                f"Missed interaction update failed: {e}",
                operation="apply_missed_interaction",
                recoverable=e.recoverable,
            ) from e
        except psycopg.Error as e:
            # Commit or rollback failing on transaction exit
            logger.error("Missed interaction commit failed", contact_id=contact.id, error=str(e))
            raise DatabaseError(
                f"Missed interaction update failed: {e}",
                operation="apply_missed_interaction",
                recoverable=isinstance(e, psycopg.OperationalError),
            ) from e

    async def update_contact_suggestion(
        self, contact_id: str, suggestion: str, suggested_at: datetime
    ) -> None:
        query = """
            UPDATE contacts
            SET ai_last_suggestion = %s,
                ai_last_suggestion_date = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (suggestion, suggested_at, contact_id))

    async def fetch_user_contexts(self, user_ids: Iterable[str]) -> dict[str, UserContext]:
        ids = sorted(set(user_ids))
        if not ids:
            return {}

        preferences = await fetch_all(
            """
            SELECT user_id::text AS user_id, timezone, ai_suggestions_enabled
            FROM user_preferences
            WHERE user_id::text = ANY(%s)
            """,
            (ids,),
        )
        subscriptions = await fetch_all(
            """
            SELECT user_id::text AS user_id, plan_id, valid_until, trial_end_date
            FROM subscriptions
            WHERE user_id::text = ANY(%s)
            """,
            (ids,),
        )

        contexts = {user_id: UserContext(user_id=user_id) for user_id in ids}
        for row in preferences:
            ctx = contexts[row["user_id"]]
            ctx.timezone = row.get("timezone") or "UTC"
            if row.get("ai_suggestions_enabled") is not None:
                ctx.ai_suggestions_enabled = row["ai_suggestions_enabled"]
        for row in subscriptions:
            ctx = contexts[row["user_id"]]
            ctx.plan_id = row.get("plan_id")
            ctx.valid_until = row.get("valid_until")
            ctx.trial_end_date = row.get("trial_end_date")
        return contexts

    async def fetch_processing_logs(self, processing_date: date) -> list[ProcessingLogEntry]:
        query = """
            SELECT contact_id::text AS contact_id, processing_date, status,
                   retry_count, batch_id::text AS batch_id, last_error
            FROM contact_processing_logs
            WHERE processing_date = %s
        """
        rows = await fetch_all(query, (processing_date,))
        return [_log_from_row(row) for row in rows]

    async def fetch_processing_log(
        self, contact_id: str, processing_date: date
    ) -> ProcessingLogEntry | None:
        query = """
            SELECT contact_id::text AS contact_id, processing_date, status,
                   retry_count, batch_id::text AS batch_id, last_error
            FROM contact_processing_logs
            WHERE contact_id = %s AND processing_date = %s
        """
        row = await fetch_one(query, (contact_id, processing_date))
        return _log_from_row(row) if row else None

    async def insert_processing_log_if_absent(self, entry: ProcessingLogEntry) -> bool:
        query = """
            INSERT INTO contact_processing_logs (
                contact_id, processing_date, batch_id, status, retry_count, last_error
            )
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (contact_id, processing_date) DO NOTHING
        """
        inserted = await execute_query(
            query,
            (
                entry.contact_id,
                entry.processing_date,
                entry.batch_id,
                entry.status.value,
                entry.retry_count,
                entry.last_error,
            ),
        )
        return inserted > 0

    async def update_processing_log(self, entry: ProcessingLogEntry) -> None:
        last_error = entry.last_error[:MAX_ERROR_LENGTH] if entry.last_error else None
        query = """
            UPDATE contact_processing_logs
            SET status = %s,
                batch_id = %s,
                retry_count = %s,
                last_error = %s,
                error_message = %s
            WHERE contact_id = %s AND processing_date = %s
        """
        await execute_query(
            query,
            (
                entry.status.value,
                entry.batch_id,
                entry.retry_count,
                last_error,
                last_error,
                entry.contact_id,
                entry.processing_date,
            ),
        )


postgres_daily_check_store = PostgresDailyCheckStore()
