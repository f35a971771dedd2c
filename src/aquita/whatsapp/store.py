"""Persistence seam for webhook reconciliation.

Each call runs in its own short transaction, so a delivery that fails half
way keeps the rows of the messages already handled and the FAILED mark on
its event. A new conversation commits together with its opening message.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from aquita.domain.conversations import ConversationRef, find_or_create_conversation
from aquita.infra.db import txn
from aquita.infra.repositories import (
    businesses_repository,
    conversations_repository,
    messages_repository,
    webhook_events_repository,
)
from aquita.infra.repositories.businesses_repository import BusinessRecord
from aquita.infra.time import utc_now


@dataclass(frozen=True)
class InboundRecord:
    conversation: ConversationRef
    message_row_id: str
    already_processed: bool


class WhatsAppStore(Protocol):
    def create_webhook_event(self, payload: Any) -> str: ...

    def mark_webhook_processed(self, event_id: str, external_event_id: str | None) -> None: ...

    def mark_webhook_failed(self, event_id: str, error_message: str) -> None: ...

    def get_business(self, business_id: str) -> BusinessRecord | None: ...

    def find_latest_conversation_for_phone(self, customer_phone: str) -> dict | None: ...

    def record_inbound(
        self,
        *,
        organization_id: str,
        business_id: str | None,
        customer_phone: str,
        customer_name: str | None,
        whatsapp_message_id: str | None,
        recipient_phone: str | None,
        content: str,
    ) -> InboundRecord: ...

    def mark_inbound_processed(self, message_row_id: str) -> None: ...

    def insert_outbound(
        self,
        *,
        conversation_id: str,
        sent: bool,
        whatsapp_message_id: str | None,
        sender_phone: str | None,
        recipient_phone: str,
        message_type: str,
        content: str,
        payload: Any,
    ) -> str: ...


class PostgresWhatsAppStore:
    """WhatsAppStore over psycopg2 repositories."""

    def create_webhook_event(self, payload: Any) -> str:
        with txn() as cur:
            return webhook_events_repository.create_event(cur, payload=payload, source="meta")

    def mark_webhook_processed(self, event_id: str, external_event_id: str | None) -> None:
        with txn() as cur:
            webhook_events_repository.mark_processed(
                cur, event_id, external_event_id=external_event_id, now=utc_now()
            )

    def mark_webhook_failed(self, event_id: str, error_message: str) -> None:
        with txn() as cur:
            webhook_events_repository.mark_failed(
                cur, event_id, error_message=error_message, now=utc_now()
            )

    def get_business(self, business_id: str) -> BusinessRecord | None:
        with txn() as cur:
            return businesses_repository.get_business(cur, business_id)

    def find_latest_conversation_for_phone(self, customer_phone: str) -> dict | None:
        with txn() as cur:
            return conversations_repository.find_latest_for_phone(cur, customer_phone)

    def record_inbound(
        self,
        *,
        organization_id: str,
        business_id: str | None,
        customer_phone: str,
        customer_name: str | None,
        whatsapp_message_id: str | None,
        recipient_phone: str | None,
        content: str,
    ) -> InboundRecord:
        """Find or create the conversation and store the inbound message once.

        Both writes share one transaction: a failed insert rolls back a
        conversation created for it. A redelivered message that was stored
        but never answered comes back with already_processed=False.
        """
        with txn() as cur:
            conversation = find_or_create_conversation(
                cur,
                organization_id=organization_id,
                business_id=business_id,
                customer_phone=customer_phone,
                customer_name=customer_name,
            )
            row_id = messages_repository.insert_inbound(
                cur,
                conversation_id=conversation.id,
                whatsapp_message_id=whatsapp_message_id,
                sender_phone=customer_phone,
                recipient_phone=recipient_phone,
                content=content,
                payload={"profileName": customer_name},
            )
            if row_id is not None:
                return InboundRecord(conversation, row_id, already_processed=False)

            existing = messages_repository.find_inbound(cur, whatsapp_message_id)
            if existing is None:
                raise RuntimeError("inbound insert conflicted but no row is visible")
            existing_id, status = existing
            return InboundRecord(conversation, existing_id, already_processed=status == "PROCESSED")

    def mark_inbound_processed(self, message_row_id: str) -> None:
        with txn() as cur:
            messages_repository.mark_inbound_processed(cur, message_row_id, now=utc_now())

    def insert_outbound(
        self,
        *,
        conversation_id: str,
        sent: bool,
        whatsapp_message_id: str | None,
        sender_phone: str | None,
        recipient_phone: str,
        message_type: str,
        content: str,
        payload: Any,
    ) -> str:
        with txn() as cur:
            return messages_repository.insert_outbound(
                cur,
                conversation_id=conversation_id,
                sent=sent,
                whatsapp_message_id=whatsapp_message_id,
                sender_phone=sender_phone,
                recipient_phone=recipient_phone,
                message_type=message_type,
                content=content,
                payload=payload,
                now=utc_now(),
            )
