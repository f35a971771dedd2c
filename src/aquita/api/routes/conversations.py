"""WhatsApp inbox endpoints for an organization (APP_ROLE=ops)."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel

from aquita.api.auth import require_ops_token
from aquita.domain.conversations import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ConversationNotFound,
    list_organization_conversations,
    update_conversation_status,
)
from aquita.infra.db import txn
from aquita.observability.correlation import get_correlation_id
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/ops/organizations/{organization_id}/whatsapp/conversations",
    tags=["conversations"],
    dependencies=[Depends(require_ops_token)],
)

logger = get_logger(__name__)

ConversationStatus = Literal["OPEN", "CLOSED", "ESCALATED"]


class ConversationStatusUpdate(BaseModel):
    status: ConversationStatus | None = None
    autoResponderActive: bool | None = None


@router.get("")
def list_conversations(
    organization_id: str = Path(..., min_length=1),
    status: ConversationStatus | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> dict:
    """Paginated inbox, most recent activity first."""
    with txn() as cur:
        return list_organization_conversations(
            cur, organization_id, status=status, page=page, limit=limit
        )


@router.patch("/{conversation_id}")
def patch_conversation(
    body: ConversationStatusUpdate,
    organization_id: str = Path(..., min_length=1),
    conversation_id: str = Path(..., min_length=1),
) -> dict:
    """Change status and/or the auto-responder flag."""
    if body.status is None and body.autoResponderActive is None:
        raise HTTPException(status_code=400, detail="nothing to update")

    try:
        with txn() as cur:
            result = update_conversation_status(
                cur,
                organization_id,
                conversation_id,
                status=body.status,
                auto_responder_active=body.autoResponderActive,
            )
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="conversation not found") from None

    logger.info(
        "conversation updated",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                organization_id=organization_id,
                conversation_id=conversation_id,
                status=result["status"],
                auto_responder_active=result["autoResponderActive"],
            )
        },
    )
    return result
