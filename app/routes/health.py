# app/routes/health.py
"""
Health check endpoints: liveness, plus readiness over the processed-mark
store and the pipeline configuration.
"""

import time

from fastapi import APIRouter, Request

from app.config import get_settings
from app.infrastructure.observability.logging import log_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "ses-mail-triage"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness check: mark store reachable and required settings present."""
    checks = {}
    overall_ok = True

    # 1) Processed-mark store
    t0 = time.time()
    store = getattr(request.app.state, "store", None)
    try:
        store_ok = bool(store is not None and await store.ping())
        latency_ms = round((time.time() - t0) * 1000, 1)
        checks["mark_store"] = {
            "ok": store_ok,
            "latency_ms": latency_ms,
            "backend": type(store).__name__ if store is not None else None,
        }
        log_health_check("mark_store", store_ok, latency_ms)
        overall_ok = overall_ok and store_ok
    except Exception as e:
        checks["mark_store"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        log_health_check("mark_store", False, round((time.time() - t0) * 1000, 1), str(e))
        overall_ok = False

    # 2) Configuration checks
    settings = get_settings()
    missing = settings.missing_pipeline_settings()
    config_ok = not missing

    checks["configuration"] = {
        "ok": config_ok,
        "issues": [f"{name} not set" for name in missing] if missing else None,
        "environment": settings.environment,
        "classifier_strategy": settings.CLASSIFIER_STRATEGY,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
