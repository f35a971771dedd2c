"""Click-to-chat endpoint: wa.me links carrying a business marker."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from aquita.domain.click_to_chat import (
    BusinessNotFound,
    ClickToChatUnavailable,
    create_click_to_chat_link,
)
from aquita.infra.db import txn
from aquita.observability.correlation import get_correlation_id
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

logger = get_logger(__name__)


class ClickToChatRequest(BaseModel):
    """Anonymous click. Unknown fields such as a caller-supplied userId are ignored."""

    businessId: str = Field(min_length=1, max_length=64)
    source: str | None = Field(default=None, max_length=40)
    sessionId: str | None = Field(default=None, max_length=120)
    visitorId: str | None = Field(default=None, max_length=120)
    variantKey: str | None = Field(default=None, max_length=80)


@router.post("/click-to-chat")
def click_to_chat(body: ClickToChatRequest) -> dict:
    """Build the link and record the click.

    Returns:
        {"conversionId", "url", "clickedAt"}. 404 unknown business,
        400 business without a WhatsApp number.
    """
    try:
        with txn() as cur:
            result = create_click_to_chat_link(
                cur,
                business_id=body.businessId,
                source=body.source,
                session_id=body.sessionId,
                visitor_id=body.visitorId,
                variant_key=body.variantKey,
                user_id=None,
            )
    except BusinessNotFound:
        raise HTTPException(status_code=404, detail="business not found") from None
    except ClickToChatUnavailable:
        raise HTTPException(
            status_code=400, detail="business has no whatsapp number configured"
        ) from None

    logger.info(
        "click-to-chat link created",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                business_id=body.businessId,
                conversion_id=result["conversionId"],
                source=body.source or "web",
            )
        },
    )
    return result
