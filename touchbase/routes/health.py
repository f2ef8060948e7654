"""
Health check endpoints.
"""

import time

from fastapi import APIRouter

from touchbase.config import settings
from touchbase.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "touchbase-daily-check"}


@router.get("/readyz")
async def readyz():
    """Readiness: database pool reachable and model credentials present."""
    checks = {}

    t0 = time.time()
    try:
        db_health = await db_health_check()
        checks["database"] = {
            "ok": bool(db_health.get("healthy", False)),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if not checks["database"]["ok"]:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
    except Exception as e:
        checks["database"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}

    checks["suggestion_client"] = {"ok": bool(settings.GROQ_API_KEY)}
    if not checks["suggestion_client"]["ok"]:
        checks["suggestion_client"]["error"] = "GROQ_API_KEY not configured"

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks}
