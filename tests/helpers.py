"""Shared test helpers (fakes and builders, not fixtures)."""

from __future__ import annotations

import itertools
from typing import Any
from unittest.mock import MagicMock

from aquita.ai.contracts import AutoReply, ConciergeAnswer
from aquita.domain.conversations import ConversationRef
from aquita.infra.repositories.businesses_repository import BusinessRecord
from aquita.whatsapp.models import SendResult
from aquita.whatsapp.store import InboundRecord

BUSINESS_ID = "3f2b8c1e-5a4d-4e2f-9b1c-7d6e5f4a3b2c"
ORG_ID = "org-santo-domingo"
CUSTOMER_PHONE = "18095551234"
BUSINESS_PHONE_NUMBER_ID = "1098765"


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def messages(self, level: str | None = None) -> list[str]:
        return [args[0] for lvl, args, _ in self.calls if level is None or lvl == level]

    def get_all_logged_content(self) -> str:
        """Concatenate all args and kwargs from all calls into one string."""
        parts = []
        for _, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)


class FakeClock:
    """Manually advanced epoch-milliseconds clock."""

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


def make_business(**overrides: Any) -> BusinessRecord:
    fields = {
        "id": BUSINESS_ID,
        "organization_id": ORG_ID,
        "name": "Colmado La Esquina",
        "slug": "colmado-la-esquina",
        "address": "Calle El Conde 12, Zona Colonial",
        "whatsapp": "+1 (809) 555-0000",
        "latitude": 18.4735,
        "longitude": -69.8849,
        "ai_auto_responder_enabled": True,
        "ai_auto_responder_prompt": "Abrimos de 8am a 10pm.",
    }
    fields.update(overrides)
    return BusinessRecord(**fields)


def meta_payload(*messages: dict, profile_name: str | None = "Ana") -> dict:
    """Meta webhook payload with one entry/change carrying `messages`."""
    value: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "18090000000", "phone_number_id": BUSINESS_PHONE_NUMBER_ID},
        "messages": list(messages),
    }
    if profile_name is not None:
        value["contacts"] = [{"profile": {"name": profile_name}, "wa_id": CUSTOMER_PHONE}]
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


def text_message(body: str, message_id: str = "wamid.IN1", sender: str = CUSTOMER_PHONE) -> dict:
    return {"from": sender, "id": message_id, "timestamp": "1704067200", "type": "text", "text": {"body": body}}


class InMemoryWhatsAppStore:
    """WhatsAppStore fake keeping rows in lists and dicts."""

    def __init__(self, businesses: list[BusinessRecord] | None = None):
        self.businesses = {b.id: b for b in businesses or []}
        self.events: dict[str, dict] = {}
        self.conversations: dict[str, dict] = {}
        self.messages: list[dict] = []
        self._ids = itertools.count(1)
        self.fail_on: str | None = None

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise RuntimeError(f"{operation} failed: connection reset")

    def create_webhook_event(self, payload):
        event_id = self._next_id("evt")
        self.events[event_id] = {"payload": payload, "status": "RECEIVED", "external_event_id": None, "error": None}
        return event_id

    def mark_webhook_processed(self, event_id, external_event_id):
        event = self.events[event_id]
        if event["status"] == "RECEIVED":
            event.update(status="PROCESSED", external_event_id=external_event_id)

    def mark_webhook_failed(self, event_id, error_message):
        event = self.events[event_id]
        if event["status"] == "RECEIVED":
            event.update(status="FAILED", error=error_message[:500])

    def get_business(self, business_id):
        self._maybe_fail("get_business")
        return self.businesses.get(business_id)

    def find_latest_conversation_for_phone(self, customer_phone):
        matches = [c for c in self.conversations.values() if c["customer_phone"] == customer_phone]
        if not matches:
            return None
        latest = max(matches, key=lambda c: c["seq"])
        return {k: latest[k] for k in ("id", "organization_id", "business_id")}

    def _find_or_create_conversation(self, organization_id, business_id, customer_phone, customer_name):
        seq = next(self._ids)
        for conversation in self.conversations.values():
            if (conversation["organization_id"], conversation["business_id"], conversation["customer_phone"]) == (
                organization_id,
                business_id,
                customer_phone,
            ):
                if customer_name:
                    conversation["customer_name"] = customer_name
                conversation["seq"] = seq
                return ConversationRef(conversation["id"], conversation["auto_responder_active"], created=False)

        conversation_id = self._next_id("conv")
        self.conversations[conversation_id] = {
            "id": conversation_id,
            "organization_id": organization_id,
            "business_id": business_id,
            "customer_phone": customer_phone,
            "customer_name": customer_name,
            "status": "OPEN",
            "auto_responder_active": True,
            "seq": seq,
        }
        return ConversationRef(conversation_id, True, created=True)

    def record_inbound(
        self,
        *,
        organization_id,
        business_id,
        customer_phone,
        customer_name,
        whatsapp_message_id,
        recipient_phone,
        content,
    ):
        self._maybe_fail("record_inbound")
        conversation = self._find_or_create_conversation(
            organization_id, business_id, customer_phone, customer_name
        )
        try:
            self._maybe_fail("insert_inbound")
        except RuntimeError:
            # Same transaction: a conversation created for this message goes too
            if conversation.created:
                del self.conversations[conversation.id]
            raise

        if whatsapp_message_id is not None:
            for row in self.messages:
                if row["direction"] == "INBOUND" and row["whatsapp_message_id"] == whatsapp_message_id:
                    return InboundRecord(conversation, row["id"], row["status"] == "PROCESSED")

        row_id = self._next_id("msg")
        self.messages.append(
            {
                "id": row_id,
                "conversation_id": conversation.id,
                "direction": "INBOUND",
                "status": "RECEIVED",
                "whatsapp_message_id": whatsapp_message_id,
                "sender_phone": customer_phone,
                "recipient_phone": recipient_phone,
                "content": content,
                "payload": {"profileName": customer_name},
            }
        )
        return InboundRecord(conversation, row_id, False)

    def mark_inbound_processed(self, message_row_id):
        for row in self.messages:
            if row["id"] == message_row_id:
                row["status"] = "PROCESSED"

    def insert_outbound(self, *, conversation_id, sent, whatsapp_message_id, sender_phone, recipient_phone, message_type, content, payload):
        self._maybe_fail("insert_outbound")
        row_id = self._next_id("msg")
        self.messages.append(
            {
                "id": row_id,
                "conversation_id": conversation_id,
                "direction": "OUTBOUND",
                "status": "SENT" if sent else "FAILED",
                "whatsapp_message_id": whatsapp_message_id,
                "sender_phone": sender_phone,
                "recipient_phone": recipient_phone,
                "message_type": message_type,
                "content": content,
                "payload": payload,
            }
        )
        return row_id

    def rows(self, direction: str) -> list[dict]:
        return [row for row in self.messages if row["direction"] == direction]


def recording_gateway(sent: bool = True) -> MagicMock:
    """Gateway double returning a fixed SendResult for every send."""
    gateway = MagicMock()
    gateway.send_text.return_value = SendResult(sent, "wamid.OUT1" if sent else None, {"messages": [{"id": "wamid.OUT1"}]})
    gateway.send_location.return_value = SendResult(sent, "wamid.LOC1" if sent else None, {})
    return gateway


class StubAutoReply:
    def __init__(self, reply: str = "Hola Ana, estamos abiertos hoy."):
        self.reply = reply
        self.calls: list[tuple] = []

    def generate(self, business_id, text, profile_name=None):
        self.calls.append((business_id, text, profile_name))
        return AutoReply(reply=self.reply)


class StubConcierge:
    def __init__(self, answer: ConciergeAnswer):
        self.answer = answer
        self.calls: list[tuple] = []

    def query(self, query, limit=5):
        self.calls.append((query, limit))
        return self.answer


def make_services(settings=None, reconciler=None, dashboard=None):
    """Service graph with doubles for the HTTP tests."""
    from aquita.api.services import Services
    from aquita.infra.settings import Settings
    from aquita.observability.dependency_health import DependencyHealthTracker
    from aquita.resilience.circuit_breaker import CircuitBreaker

    return Services(
        settings=settings or Settings(ops_api_token="ops-secret"),
        health_tracker=DependencyHealthTracker(),
        circuit_breaker=CircuitBreaker(),
        gateway=MagicMock(),
        reconciler=reconciler or MagicMock(),
        dashboard=dashboard or MagicMock(),
    )
