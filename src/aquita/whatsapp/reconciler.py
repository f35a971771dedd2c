"""Inbound webhook reconciliation: store the conversation, answer the customer.

Security:
- Sender phone and message text are PII: they reach the store and the
  outbound gateway only, never the logs (hashes and lengths instead).

Each delivery is logged as a webhook event that ends PROCESSED or FAILED.
Messages are handled in payload order, each fully (reply sent and stored)
before the next. The first failure marks the event FAILED and is re-raised,
so the provider redelivers the whole batch; messages already answered are
recognised by their provider id and skipped on redelivery.
"""

from __future__ import annotations

from typing import Any

from aquita.infra.repositories.businesses_repository import BusinessRecord
from aquita.observability.correlation import get_correlation_id
from aquita.observability.logging import get_logger
from aquita.observability.redaction import hash_identifier, safe_log_context, truncate_error

from .meta_adapter import extract_business_id, parse_incoming_messages
from .meta_sender import WhatsAppOutboundGateway
from .models import ComposedReply, ParsedIncomingMessage, SendResult
from .replies import ReplyComposer
from .store import WhatsAppStore

logger = get_logger(__name__)


class WebhookReconciler:
    """Drives one webhook delivery through the store, composer and gateway."""

    def __init__(
        self,
        store: WhatsAppStore,
        composer: ReplyComposer,
        gateway: WhatsAppOutboundGateway,
    ) -> None:
        self._store = store
        self._composer = composer
        self._gateway = gateway

    def handle_webhook_payload(self, payload: Any) -> dict:
        """Process every text-bearing message of a delivery.

        Returns:
            {"processedMessages": n} where n counts parsed messages.

        Raises:
            Exception: Whatever aborted processing; the event is FAILED first.
        """
        event_id = self._store.create_webhook_event(payload)
        messages = parse_incoming_messages(payload)
        correlation_id = get_correlation_id()

        try:
            for message in messages:
                self._process_message(message)
        except Exception as e:
            self._store.mark_webhook_failed(event_id, truncate_error(e))
            logger.exception(
                "whatsapp webhook processing failed",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        event_id=event_id,
                        messages=len(messages),
                        error_type=type(e).__name__,
                    )
                },
            )
            raise

        external_event_id = messages[0].external_message_id if messages else None
        self._store.mark_webhook_processed(event_id, external_event_id)

        logger.info(
            "whatsapp webhook processed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    event_id=event_id,
                    messages=len(messages),
                )
            },
        )
        return {"processedMessages": len(messages)}

    def _process_message(self, message: ParsedIncomingMessage) -> None:
        log_ctx = safe_log_context(
            correlationId=get_correlation_id(),
            from_hash=hash_identifier(message.from_phone),
            message_id_prefix=(message.external_message_id or "")[:8],
            text_len=len(message.text),
        )

        scoped_business = None
        marker_business_id = extract_business_id(message.text)
        if marker_business_id:
            scoped_business = self._store.get_business(marker_business_id)

        previous = self._store.find_latest_conversation_for_phone(message.from_phone)

        organization_id = (
            scoped_business.organization_id
            if scoped_business
            else (previous["organization_id"] if previous else None)
        )
        business_context_id = (
            scoped_business.id
            if scoped_business
            else (previous["business_id"] if previous else None)
        )

        conversation = None
        inbound_row_id = None
        if organization_id:
            inbound = self._store.record_inbound(
                organization_id=organization_id,
                business_id=business_context_id,
                customer_phone=message.from_phone,
                customer_name=message.profile_name,
                whatsapp_message_id=message.external_message_id,
                recipient_phone=message.to_phone_number_id,
                content=message.text,
            )
            conversation = inbound.conversation
            inbound_row_id = inbound.message_row_id
            if inbound.already_processed:
                logger.info("duplicate whatsapp message ignored", extra={"extra_fields": log_ctx})
                return

            if not conversation.auto_responder_active:
                self._store.mark_inbound_processed(inbound_row_id)
                logger.info(
                    "auto-responder paused for conversation",
                    extra={"extra_fields": {**log_ctx, "conversation_id": conversation.id}},
                )
                return

        business = self._reply_business(scoped_business, business_context_id)
        reply = self._composer.build_reply(message.text, business, message.profile_name)
        outbound = self._send(message.from_phone, reply)

        if conversation is not None:
            self._store.insert_outbound(
                conversation_id=conversation.id,
                sent=outbound.sent,
                whatsapp_message_id=outbound.provider_message_id,
                sender_phone=message.to_phone_number_id,
                recipient_phone=message.from_phone,
                message_type=reply.message_type,
                content=reply.text,
                payload=outbound.raw_response,
            )
            self._store.mark_inbound_processed(inbound_row_id)

        logger.info(
            "whatsapp reply dispatched",
            extra={
                "extra_fields": {
                    **log_ctx,
                    **safe_log_context(
                        sent=outbound.sent,
                        reason=outbound.reason,
                        message_type=reply.message_type,
                        stored=conversation is not None,
                        business_context=business is not None,
                    ),
                }
            },
        )

    def _reply_business(
        self,
        scoped_business: BusinessRecord | None,
        business_context_id: str | None,
    ) -> BusinessRecord | None:
        if scoped_business is not None:
            return scoped_business
        if business_context_id:
            return self._store.get_business(business_context_id)
        return None

    def _send(self, to: str, reply: ComposedReply) -> SendResult:
        """Text first, then the location pin as an independent send."""
        outbound = self._gateway.send_text(to=to, text=reply.text, preview_url=True)

        if reply.location is not None:
            self._gateway.send_location(
                to=to,
                latitude=reply.location.latitude,
                longitude=reply.location.longitude,
                name=reply.location.name,
                address=reply.location.address,
            )
        return outbound
