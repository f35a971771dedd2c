"""Public-facing routes (APP_ROLE=public)."""

import time

import psycopg2
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from aquita.infra.db import txn
from aquita.infra.repositories.database_stats_repository import ping
from aquita.infra.time import monotonic_ms, utc_now
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

SERVICE_NAME = "aquita-api"

router = APIRouter()

logger = get_logger(__name__)

_started_at = time.monotonic()


def _uptime_seconds() -> int:
    return int(time.monotonic() - _started_at)


@router.get("/health")
def health() -> dict:
    """Liveness check endpoint."""
    return {
        "service": SERVICE_NAME,
        "status": "ok",
        "timestamp": utc_now().isoformat(),
        "uptimeSeconds": _uptime_seconds(),
    }


@router.get("/health/ready")
def readiness():
    """Readiness check: 503 when the database does not answer."""
    started_at = monotonic_ms()
    try:
        with txn() as cur:
            ping(cur)
    except (psycopg2.Error, RuntimeError) as e:
        logger.warning(
            "readiness check failed",
            extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
        )
        return JSONResponse(
            status_code=503,
            content={
                "service": SERVICE_NAME,
                "status": "error",
                "timestamp": utc_now().isoformat(),
                "checks": {"database": "down"},
            },
        )

    return {
        "service": SERVICE_NAME,
        "status": "ok",
        "timestamp": utc_now().isoformat(),
        "uptimeSeconds": _uptime_seconds(),
        "checks": {"database": "up"},
        "responseTimeMs": round(monotonic_ms() - started_at, 2),
    }
