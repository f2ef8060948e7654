"""
HTTP trigger for the daily check, for schedulers that call a URL instead of
running the worker process.
"""

import hmac

from fastapi import APIRouter, Header, HTTPException, status

from touchbase.config import ConfigurationError, settings
from touchbase.features.daily_check.jobs import daily_check_job
from touchbase.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _verify_cron_secret(authorization: str | None) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>` when a secret is configured."""
    if not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


@router.post("/daily-check")
async def trigger_daily_check(authorization: str | None = Header(default=None)):
    _verify_cron_secret(authorization)

    try:
        job = daily_check_job.get_daily_check_job()
    except ConfigurationError as e:
        logger.error("Daily check not configured", missing=e.missing)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        ) from e

    try:
        summary = await job.run_once()
    except daily_check_job.DailyCheckJobError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        ) from e
    if summary.get("skipped"):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=summary["reason"])
    return summary


@router.get("/daily-check/status")
async def daily_check_status(authorization: str | None = Header(default=None)):
    _verify_cron_secret(authorization)
    try:
        job = daily_check_job.get_daily_check_job()
    except ConfigurationError as e:
        return {"job_name": "daily_check", "configured": False, "missing": e.missing}
    return {"configured": True, **job.get_job_status()}
