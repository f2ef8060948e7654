"""
Process entry point for touchbase background jobs.

Cron runs `python -m touchbase.jobs.worker daily_check` once a day; a
long-lived container can run `daily_check_scheduler` instead. The job name
comes from the first CLI argument, then WORKER_JOB, then defaults to
`daily_check`.

Exit codes: 0 when the job finished (including "nothing to do" and an
overlapping run that was skipped), 1 when the run failed at a stage such as
reconciliation or selection, 2 for an unknown job name or missing
configuration.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from touchbase.config import ConfigurationError, settings
from touchbase.features.daily_check.jobs.daily_check_job import (
    DailyCheckJobError,
    run_daily_check,
    start_daily_check_scheduler,
)
from touchbase.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_USAGE = 2

JobCoroutine = Callable[[], Awaitable[object]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "daily_check": run_daily_check,
    "daily_check_scheduler": start_daily_check_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "daily_check").strip().lower()


async def run_worker(job_name: str | None = None) -> object:
    """Run the requested background job and return whatever it returns."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    result = await JOB_REGISTRY[name]()
    if isinstance(result, dict):
        logger.info(
            "Background worker finished",
            job=name,
            message=result.get("message"),
            skipped=result.get("skipped", False),
            total_success=result.get("total_success"),
            total_errors=result.get("total_errors"),
        )
    return result


def main() -> int:
    """CLI entrypoint; returns the process exit code."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    if job_name not in JOB_REGISTRY:
        logger.error("Unknown worker job", job=job_name, available=sorted(JOB_REGISTRY))
        return EXIT_USAGE

    try:
        asyncio.run(run_worker(job_name))
    except DailyCheckJobError as e:
        logger.error("Background job failed", job=job_name, stage=e.operation, error=str(e))
        return EXIT_RUN_FAILED
    except ConfigurationError as e:
        logger.error("Background job not configured", job=job_name, missing=e.missing)
        return EXIT_USAGE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
