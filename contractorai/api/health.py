"""
Health endpoints.

/healthz is liveness only; /readyz checks the database and required tables.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from contractorai.core.database import check_connection, get_engine

logger = logging.getLogger("contractorai")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = [
    "user_subscriptions",
    "billing_webhook_events",
    "clients",
    "projects",
    "email_drafts",
]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: DB connectivity + required tables."""
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    try:
        inspector = inspect(get_engine())
        missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    except Exception as e:
        logger.error("readyz.failed", extra={"error_message": str(e)})
        return JSONResponse(status_code=503, content={"status": "error", "detail": "schema inspection failed"})

    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning("readyz.missing_tables", extra={"error_message": detail})
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok"}
