"""
Batch processor for daily AI suggestions.

Splits the work list into fixed-size batches that run strictly one after the
other. Contacts inside a batch run concurrently but each one waits
delay_between_contacts * index before its first call, so requests are
staggered instead of bursted. Transient model failures are retried with
exponential backoff and jitter; a rate-limit response anywhere in a batch
adds one cooldown before the next batch.

Every contact goes through the processing ledger before and after its
attempt, which makes a second run on the same day a no-op for settled
contacts.
"""

import asyncio
import random
import uuid
from collections.abc import Awaitable, Callable
from datetime import date, datetime

from touchbase.infrastructure.observability.logging import get_logger
from touchbase.services.suggestion_client import TransientSuggestionError
from touchbase.utils.dates import processing_date

from ..domain.models import (
    BatchConfig,
    BatchResult,
    Contact,
    ContactOutcome,
    OutcomeStatus,
    ProcessingStatus,
    UserContext,
)
from ..repository.store import DailyCheckStore
from .ledger import MAX_RETRIES_EXCEEDED_MESSAGE, ProcessingLedger
from .suggestion_service import SuggestionService

logger = get_logger(__name__)

MAX_JITTER_MS = 1000

Sleep = Callable[[float], Awaitable[None]]


class BatchPreparationError(Exception):
    """Raised when a batch cannot be assembled (e.g. user context lookup failed)."""

    def __init__(self, message: str, batch_id: str):
        super().__init__(message)
        self.batch_id = batch_id


class BatchProcessor:
    def __init__(
        self,
        store: DailyCheckStore,
        ledger: ProcessingLedger,
        suggestions: SuggestionService,
        config: BatchConfig,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.ledger = ledger
        self.suggestions = suggestions
        self.config = config
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def run(self, contacts: list[Contact], *, now: datetime) -> list[BatchResult]:
        """
        Process contacts batch by batch.

        Args:
            contacts: work list from the selector
            now: reference time for the run; fixes the ledger date

        Returns:
            One BatchResult per batch, in order
        """
        limited = contacts[: self.config.max_contacts_per_run]
        if len(limited) < len(contacts):
            logger.info(
                "Work list truncated to per-run limit",
                received=len(contacts),
                max_contacts_per_run=self.config.max_contacts_per_run,
            )

        batches = self._create_batches(limited)
        day = processing_date(now)
        results: list[BatchResult] = []

        logger.info(
            "Processing contacts in batches",
            total_contacts=len(limited),
            batch_count=len(batches),
            batch_size=self.config.batch_size,
        )

        for index, (batch_id, batch) in enumerate(batches):
            logger.info(
                "Processing batch",
                batch_id=batch_id,
                batch_number=index + 1,
                contact_count=len(batch),
            )
            try:
                result = await self._process_batch(batch_id, batch, day, now)
            except Exception as e:
                logger.error(
                    "Batch failed before producing results",
                    batch_id=batch_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = BatchResult.batch_failure(
                    batch_id, str(e), rate_limited=self._is_rate_limit_error(e)
                )

            results.append(result)
            logger.info(
                "Batch completed",
                batch_id=batch_id,
                processed_count=result.processed_count,
                success_count=result.success_count,
                error_count=result.error_count,
                rate_limited=result.rate_limited,
            )

            if index < len(batches) - 1:
                await self._pause_between_batches(result)

        return results

    def _create_batches(self, contacts: list[Contact]) -> list[tuple[str, list[Contact]]]:
        size = self.config.batch_size
        return [
            (str(uuid.uuid4()), contacts[i : i + size]) for i in range(0, len(contacts), size)
        ]

    async def _pause_between_batches(self, result: BatchResult) -> None:
        if result.rate_limited:
            cooldown = self.rate_limit_cooldown_ms()
            logger.warning(
                "Rate limit detected, adding cooldown before next batch",
                batch_id=result.batch_id,
                cooldown_ms=cooldown,
            )
            await self._sleep_ms(cooldown)
        await self._sleep_ms(self.config.delay_between_batches_ms)

    async def _prepare_batch(self, batch_id: str, batch: list[Contact]) -> dict[str, UserContext]:
        try:
            return await self.store.fetch_user_contexts({c.user_id for c in batch})
        except Exception as e:
            raise BatchPreparationError(f"Failed to load user context: {e}", batch_id) from e

    async def _process_batch(
        self, batch_id: str, batch: list[Contact], day: date, now: datetime
    ) -> BatchResult:
        contexts = await self._prepare_batch(batch_id, batch)

        settled = await asyncio.gather(
            *[
                self._process_staggered(
                    index,
                    contact,
                    batch_id,
                    day,
                    contexts.get(contact.user_id) or UserContext(user_id=contact.user_id),
                    now,
                )
                for index, contact in enumerate(batch)
            ],
            return_exceptions=True,
        )

        outcomes: list[ContactOutcome] = []
        for contact, item in zip(batch, settled):
            if isinstance(item, BaseException):
                logger.error(
                    "Unhandled error processing contact",
                    contact_id=contact.id,
                    batch_id=batch_id,
                    error=str(item),
                )
                item = ContactOutcome(contact.id, OutcomeStatus.ERROR, error=str(item))
            outcomes.append(item)

        return BatchResult.from_outcomes(batch_id, outcomes)

    async def _process_staggered(
        self,
        index: int,
        contact: Contact,
        batch_id: str,
        day: date,
        context: UserContext,
        now: datetime,
    ) -> ContactOutcome:
        await self._sleep_ms(self.config.delay_between_contacts_ms * index)
        return await self.process_contact(contact, batch_id, day, context, now)

    async def process_contact(
        self,
        contact: Contact,
        batch_id: str,
        day: date,
        context: UserContext,
        now: datetime,
    ) -> ContactOutcome:
        """Ledger gate, attempt with retries, then record the settled status."""
        try:
            entry, created = await self.ledger.get_or_create(contact.id, day)
        except Exception as e:
            logger.error("Ledger read failed", contact_id=contact.id, error=str(e))
            return ContactOutcome(contact.id, OutcomeStatus.ERROR, error=f"Ledger read failed: {e}")

        if entry.status == ProcessingStatus.SUCCESS:
            logger.debug("Contact already processed today", contact_id=contact.id)
            return ContactOutcome(contact.id, OutcomeStatus.SUCCESS)

        if self.ledger.is_exhausted(entry, created):
            if entry.status != ProcessingStatus.MAX_RETRIES_EXCEEDED:
                await self.ledger.mark_max_retries_exceeded(entry)
            logger.info(
                "Skipping contact at retry ceiling",
                contact_id=contact.id,
                retry_count=entry.retry_count,
            )
            return ContactOutcome(contact.id, OutcomeStatus.ERROR, error=MAX_RETRIES_EXCEEDED_MESSAGE)

        try:
            await self.ledger.mark_pending(entry, batch_id, reattempt=not created)
        except Exception as e:
            logger.error("Ledger write failed", contact_id=contact.id, error=str(e))
            return ContactOutcome(contact.id, OutcomeStatus.ERROR, error=f"Ledger write failed: {e}")

        outcome = await self._attempt_with_retry(contact, context, now)

        try:
            if outcome.status == OutcomeStatus.SUCCESS:
                await self.ledger.mark_success(entry)
            else:
                await self.ledger.mark_error(entry, outcome.error or "Unknown error")
        except Exception as e:
            # Row stays pending, so the next run picks the contact up again
            logger.error("Ledger write failed", contact_id=contact.id, error=str(e))
            outcome.status = OutcomeStatus.ERROR
            outcome.error = f"Ledger write failed: {e}"

        return outcome

    async def _attempt_with_retry(
        self, contact: Contact, context: UserContext, now: datetime
    ) -> ContactOutcome:
        attempt = 1
        rate_limited = False

        while True:
            try:
                suggestion = await self.suggestions.suggestion_for(contact, context, now)
                if suggestion is not None:
                    await self.store.update_contact_suggestion(contact.id, suggestion, now)
                return ContactOutcome(
                    contact.id,
                    OutcomeStatus.SUCCESS,
                    rate_limited=rate_limited,
                    attempts=attempt,
                    suggestion_written=suggestion is not None,
                )

            except Exception as e:
                if self._is_rate_limit_error(e):
                    rate_limited = True

                if self._is_transient(e) and attempt < self.config.retry_attempts:
                    delay = self.backoff_delay_ms(attempt)
                    logger.warning(
                        "Transient failure, retrying contact",
                        contact_id=contact.id,
                        attempt=attempt,
                        retry_in_ms=round(delay),
                        error=str(e),
                    )
                    await self._sleep_ms(delay)
                    attempt += 1
                    continue

                logger.warning(
                    "Contact processing failed",
                    contact_id=contact.id,
                    attempt=attempt,
                    transient=self._is_transient(e),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return ContactOutcome(
                    contact.id,
                    OutcomeStatus.ERROR,
                    error=str(e) or type(e).__name__,
                    rate_limited=rate_limited,
                    attempts=attempt,
                )

    def backoff_delay_ms(self, attempt: int) -> float:
        """min(max_retry_delay, retry_delay * multiplier^(attempt-1)) plus up to 1s of jitter."""
        base = min(
            self.config.max_retry_delay_ms,
            self.config.retry_delay_ms * self.config.backoff_multiplier ** (attempt - 1),
        )
        return base + self._rng.uniform(0, MAX_JITTER_MS)

    def rate_limit_cooldown_ms(self) -> float:
        return min(
            self.config.max_retry_delay_ms,
            self.config.delay_between_batches_ms * self.config.backoff_multiplier,
        )

    def _is_rate_limit_error(self, error: BaseException) -> bool:
        return getattr(error, "status_code", None) in self.config.rate_limit_status_codes

    def _is_transient(self, error: BaseException) -> bool:
        return isinstance(error, TransientSuggestionError) or self._is_rate_limit_error(error)

    async def _sleep_ms(self, milliseconds: float) -> None:
        if milliseconds > 0:
            await self._sleep(milliseconds / 1000)
