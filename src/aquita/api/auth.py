"""Bearer-token guard for operational routes.

Fail closed: with no OPS_API_TOKEN configured every request is rejected.
"""

from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

from .deps import get_services

logger = get_logger(__name__)


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def require_ops_token(request: Request) -> None:
    """FastAPI dependency: 401 without a token, 403 on a wrong or unconfigured one."""
    expected = get_services(request).settings.ops_api_token
    token = extract_bearer_token(request)

    if not token:
        raise HTTPException(status_code=401, detail="missing bearer token")

    if not expected:
        logger.error(
            "OPS_API_TOKEN not configured - fail closed",
            extra={"extra_fields": safe_log_context(path=request.url.path)},
        )
        raise HTTPException(status_code=403, detail="forbidden")

    if not hmac.compare_digest(token, expected):
        logger.warning(
            "ops auth failed",
            extra={"extra_fields": safe_log_context(path=request.url.path)},
        )
        raise HTTPException(status_code=403, detail="forbidden")
