"""
Daily check job.

Runs the whole pipeline once: reconcile today's misses, select contacts due
in the next 24 hours, and hand the unsettled ones to the batch processor.
Triggered by an external scheduler (cron or POST /jobs/daily-check) with no
parameters; configuration comes from settings.
"""

import asyncio
import random
import uuid
from collections.abc import Callable
from datetime import datetime

from touchbase.config import Settings, settings
from touchbase.db.pool import db_pool
from touchbase.infrastructure.observability.logging import (
    bind_job_context,
    clear_job_context,
    get_logger,
)
from touchbase.services.suggestion_client import SuggestionClient
from touchbase.utils.dates import utc_now

from ..domain.models import BatchConfig, BatchResult
from ..pipeline.reconciliation import ReconciliationPass, ReconciliationReport
from ..pipeline.selector import Selection, select_due_tomorrow
from ..repository.postgres_store import postgres_daily_check_store
from ..repository.store import DailyCheckStore
from ..services.batch_processor import BatchProcessor, Sleep
from ..services.ledger import ProcessingLedger
from ..services.suggestion_service import SuggestionGenerator, SuggestionService

logger = get_logger(__name__)


class DailyCheckJobError(Exception):
    """Custom exception for daily check job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def build_summary(
    message: str,
    *,
    started_at: datetime,
    finished_at: datetime,
    reconciliation: ReconciliationReport,
    selection: Selection,
    results: list[BatchResult],
    config: BatchConfig,
) -> dict:
    """Structured run summary suitable for logging and the HTTP trigger response."""
    return {
        "message": message,
        "started_at": started_at.isoformat(),
        "duration_seconds": round((finished_at - started_at).total_seconds(), 2),
        "contacts_found": len(selection.candidates),
        "unprocessed_contacts": len(selection.work_list),
        "batches_processed": len(results),
        "total_processed": sum(r.processed_count for r in results),
        "total_success": sum(r.success_count for r in results),
        "total_errors": sum(r.error_count for r in results),
        "reconciliation": reconciliation.to_dict(),
        "results": [r.to_dict() for r in results],
        "configuration": config.to_dict(),
    }


class DailyCheckJob:
    """
    One daily check run over an injected store and suggestion generator.

    Overlapping runs inside one process are refused; overlapping runs across
    processes are made safe by the processing ledger.
    """

    def __init__(
        self,
        store: DailyCheckStore,
        generator: SuggestionGenerator,
        config: BatchConfig,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.config = config
        self.clock = clock
        self.ledger = ProcessingLedger(store)
        self.reconciliation = ReconciliationPass(store)
        self.processor = BatchProcessor(
            store,
            self.ledger,
            SuggestionService(store, generator),
            config,
            sleep=sleep,
            rng=rng,
        )
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_summary: dict | None = None

    async def run_once(self, now: datetime | None = None) -> dict:
        """
        Run reconciliation, selection, and batch processing once.

        Returns:
            Summary dict (see build_summary), or {"skipped": True, ...} if a
            run is already in progress in this process

        Raises:
            DailyCheckJobError: a store failure outside the per-contact
                isolation (reconciliation lookup, selection), tagged with the
                stage so the invoking scheduler can alert.
        """
        if self.is_running:
            logger.warning("Daily check already running, skipping this trigger")
            return {"skipped": True, "reason": "already_running"}

        now = now or self.clock()
        self.is_running = True
        stage = "startup"
        bind_job_context(job_run="daily_check", run_id=str(uuid.uuid4()))

        try:
            logger.info(
                "Starting daily check",
                reference_time=now.isoformat(),
                **self.config.to_dict(),
            )

            stage = "reconciliation"
            reconciliation = await self.reconciliation.run(now)
            stage = "selection"
            selection = await select_due_tomorrow(self.store, now)

            results: list[BatchResult] = []
            if not selection.candidates:
                message = "No contacts need attention"
            elif selection.is_empty:
                message = "No unprocessed contacts need attention"
            else:
                stage = "batch_processing"
                results = await self.processor.run(selection.work_list, now=now)
                message = "Daily check completed with batch processing"

            summary = build_summary(
                message,
                started_at=now,
                finished_at=self.clock(),
                reconciliation=reconciliation,
                selection=selection,
                results=results,
                config=self.config,
            )
            self.last_run_time = now
            self.last_summary = summary

            logger.info(
                "Daily check completed",
                **{k: v for k, v in summary.items() if k not in ("results", "configuration")},
            )
            return summary

        except Exception as e:
            logger.error(
                "Daily check failed", stage=stage, error=str(e), error_type=type(e).__name__
            )
            raise DailyCheckJobError(
                f"Daily check failed during {stage}: {e}", operation=stage
            ) from e

        finally:
            self.is_running = False
            clear_job_context()

    def get_job_status(self) -> dict:
        return {
            "job_name": "daily_check",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "last_run_summary": (
                {k: v for k, v in self.last_summary.items() if k != "results"}
                if self.last_summary
                else None
            ),
        }


def build_daily_check_job(config: Settings = settings) -> DailyCheckJob:
    """Production wiring: Postgres store, Groq client, settings-derived BatchConfig."""
    config.require("SUPABASE_DB_URL", "GROQ_API_KEY")
    return DailyCheckJob(
        postgres_daily_check_store,
        SuggestionClient(config),
        BatchConfig.from_settings(config),
    )


_daily_check_job: DailyCheckJob | None = None


def get_daily_check_job() -> DailyCheckJob:
    """Process-wide job instance, built on first use so imports never need credentials."""
    global _daily_check_job
    if _daily_check_job is None:
        _daily_check_job = build_daily_check_job()
    return _daily_check_job


async def run_daily_check() -> dict:
    """
    One-shot entry point for cron: open the pool, run once, close the pool.

    Missing configuration and store failures propagate to the caller.
    """
    job = get_daily_check_job()
    owns_pool = not db_pool.initialized
    if owns_pool:
        await db_pool.initialize()
    try:
        return await job.run_once()
    finally:
        if owns_pool:
            await db_pool.close()


async def start_daily_check_scheduler() -> None:
    """
    Long-running alternative to cron: run the check every
    DAILY_CHECK_INTERVAL_HOURS until the process is stopped.
    """
    interval_seconds = settings.DAILY_CHECK_INTERVAL_HOURS * 3600
    logger.info(
        "Starting daily check scheduler",
        interval_hours=settings.DAILY_CHECK_INTERVAL_HOURS,
    )

    job = get_daily_check_job()
    await db_pool.initialize()
    try:
        while True:
            try:
                await job.run_once()
            except Exception as e:
                logger.error(
                    "Error in daily check scheduler", error=str(e), error_type=type(e).__name__
                )
                # Back off before the next attempt instead of waiting a full day
                await asyncio.sleep(min(interval_seconds, 600))
                continue

            await asyncio.sleep(interval_seconds)
    finally:
        await db_pool.close()
