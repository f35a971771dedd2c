"""WhatsApp webhook routes - Meta Cloud API integration.

Security:
- Sender phone and text exist only in memory and in the store
- Logs contain NO PII

Unlike a fire-and-forget receiver, processing errors return 500 so that
Meta redelivers; already answered messages are skipped on redelivery.
"""

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from aquita.api.deps import get_services
from aquita.api.services import Services
from aquita.observability.correlation import get_correlation_id
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context
from aquita.whatsapp.meta_adapter import (
    InvalidWebhookPayload,
    SignatureVerificationError,
    WebhookVerificationError,
    decode_webhook_body,
    verify_challenge,
    verify_signature,
)

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


@router.get("/meta")
def meta_webhook_verify(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    services: Services = Depends(get_services),
) -> Response:
    """Meta webhook verification endpoint.

    Returns:
        200 with hub.challenge as plain text if valid.
        400 when params are missing, 403 on wrong mode or token.
    """
    try:
        challenge = verify_challenge(
            hub_mode,
            hub_verify_token,
            hub_challenge,
            services.settings.whatsapp.verify_token,
        )
    except WebhookVerificationError as e:
        logger.warning(
            "meta webhook verification failed",
            extra={
                "extra_fields": safe_log_context(
                    hub_mode=hub_mode or "missing",
                    status_code=e.status_code,
                    token_configured=bool(services.settings.whatsapp.verify_token),
                )
            },
        )
        return JSONResponse(status_code=e.status_code, content={"error": str(e)})

    logger.info(
        "meta webhook verification successful",
        extra={"extra_fields": safe_log_context(hub_mode=hub_mode)},
    )
    return PlainTextResponse(challenge)


@router.post("/meta")
async def meta_webhook(
    request: Request,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
    services: Services = Depends(get_services),
) -> Response:
    """Receive a Meta Cloud API webhook and answer its messages.

    Returns:
        200 {"processedMessages": n} on success.
        400 for a non-JSON body, 403 for a bad signature,
        500 when processing failed (event marked FAILED).
    """
    correlation_id = get_correlation_id()
    body_bytes = await request.body()

    app_secret = services.settings.whatsapp.app_secret
    if app_secret:
        try:
            verify_signature(body_bytes, x_hub_signature_256 or "", app_secret)
        except SignatureVerificationError as e:
            logger.warning(
                "meta signature verification failed",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
            )
            return JSONResponse(status_code=403, content={"error": "invalid_signature"})

    try:
        payload = decode_webhook_body(body_bytes)
    except InvalidWebhookPayload:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=400, content={"error": "invalid_json"})

    try:
        result = await run_in_threadpool(services.reconciler.handle_webhook_payload, payload)
    except Exception:
        # Already logged and marked FAILED by the reconciler
        return JSONResponse(status_code=500, content={"error": "processing_failed"})

    return JSONResponse(status_code=200, content=result)
