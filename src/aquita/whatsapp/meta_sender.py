"""Outbound WhatsApp messaging via Meta Cloud API.

Security: NEVER log the recipient phone or message text. Only hashes and lengths.

Result paths:
- invalid input  -> sent=False, reason, no network call, no sample
- disabled       -> sent=False, simulated id, reason whatsapp_disabled, no sample
- 2xx            -> sent=True, provider message id, success sample
- non-2xx        -> sent=False, parsed error body, warning, failure sample
- transport error -> failure sample, recorded on span, re-raised
"""

from __future__ import annotations

import re
import time
from typing import Any

import requests
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from aquita.infra.settings import WhatsAppSettings
from aquita.infra.time import monotonic_ms
from aquita.observability.dependency_health import DependencyHealthTracker
from aquita.observability.logging import get_logger
from aquita.observability.redaction import hash_identifier, safe_log_context
from aquita.observability.tracing import get_tracer

from .models import SendResult

logger = get_logger(__name__)

DEPENDENCY = "whatsapp"
MIN_PHONE_DIGITS = 8
MAX_TEXT_CHARS = 4096
MAX_LOCATION_NAME_CHARS = 100
MAX_LOCATION_ADDRESS_CHARS = 300

_NON_DIGITS = re.compile(r"[^\d]")


def normalize_phone(raw_phone: str | None) -> str | None:
    """Strip everything but digits. Returns None when fewer than 8 digits remain."""
    digits = _NON_DIGITS.sub("", raw_phone or "")
    if len(digits) < MIN_PHONE_DIGITS:
        return None
    return digits


def extract_provider_message_id(raw_response: Any) -> str | None:
    """Read messages[0].id from a Cloud API response body."""
    if not isinstance(raw_response, dict):
        return None
    messages = raw_response.get("messages")
    if not isinstance(messages, list) or not messages:
        return None
    first = messages[0]
    if not isinstance(first, dict):
        return None
    message_id = first.get("id")
    return message_id if isinstance(message_id, str) else None


def _parse_body(response: requests.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    raw_text = response.text
    if "application/json" not in content_type:
        return raw_text
    if not raw_text:
        return {}
    try:
        return response.json()
    except ValueError:
        return raw_text


def _simulated_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}"


class WhatsAppOutboundGateway:
    """Sends single text/location messages, degrading to a no-op when unconfigured.

    Args:
        settings: Provider configuration.
        health_tracker: Receives one sample per real send attempt.
        session: HTTP session (injectable for tests). Owned when not given.
        tracer: OpenTelemetry tracer; defaults to the process tracer.
    """

    def __init__(
        self,
        settings: WhatsAppSettings,
        health_tracker: DependencyHealthTracker,
        session: requests.Session | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self._settings = settings
        self._health = health_tracker
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._tracer = tracer or get_tracer()

    def is_enabled(self) -> bool:
        s = self._settings
        return s.enabled and bool(s.phone_number_id) and bool(s.access_token)

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    @property
    def _messages_url(self) -> str:
        s = self._settings
        return f"{s.graph_base_url}/{s.api_version}/{s.phone_number_id}/messages"

    def send_text(self, *, to: str, text: str, preview_url: bool = False) -> SendResult:
        """Send a text message. Text is trimmed and capped at 4096 chars."""
        with self._tracer.start_as_current_span(
            "whatsapp.send_text", record_exception=False, set_status_on_exception=False
        ) as span:
            phone = normalize_phone(to)
            body = (text or "").strip()
            span.set_attribute("channel", "whatsapp")
            span.set_attribute("message.type", "text")
            span.set_attribute("message.length", len(body))

            if not phone or not body:
                span.set_status(Status(StatusCode.ERROR, "invalid_phone_or_text"))
                return SendResult(False, None, {"reason": "invalid_phone_or_text"})

            if not self.is_enabled():
                return SendResult(False, _simulated_id("simulated"), {"reason": "whatsapp_disabled"})

            payload = {
                "messaging_product": "whatsapp",
                "to": phone,
                "type": "text",
                "text": {"body": body[:MAX_TEXT_CHARS], "preview_url": preview_url},
            }
            return self._post(span, "send_text", phone, payload, text_len=len(body))

    def send_location(
        self,
        *,
        to: str,
        latitude: float,
        longitude: float,
        name: str,
        address: str | None = None,
    ) -> SendResult:
        """Send a location pin. Name capped at 100 chars, address at 300."""
        with self._tracer.start_as_current_span(
            "whatsapp.send_location", record_exception=False, set_status_on_exception=False
        ) as span:
            phone = normalize_phone(to)
            span.set_attribute("channel", "whatsapp")
            span.set_attribute("message.type", "location")

            if not phone:
                span.set_status(Status(StatusCode.ERROR, "invalid_phone"))
                return SendResult(False, None, {"reason": "invalid_phone"})

            if not self.is_enabled():
                return SendResult(
                    False, _simulated_id("simulated-location"), {"reason": "whatsapp_disabled"}
                )

            location: dict[str, Any] = {
                "latitude": latitude,
                "longitude": longitude,
                "name": (name or "")[:MAX_LOCATION_NAME_CHARS],
            }
            if address:
                location["address"] = address[:MAX_LOCATION_ADDRESS_CHARS]

            payload = {
                "messaging_product": "whatsapp",
                "to": phone,
                "type": "location",
                "location": location,
            }
            return self._post(span, "send_location", phone, payload)

    def _post(
        self,
        span: Span,
        operation: str,
        phone: str,
        payload: dict[str, Any],
        **log_fields: Any,
    ) -> SendResult:
        """Issue the HTTP call, trace it and report one health sample."""
        log_ctx = safe_log_context(
            to_hash=hash_identifier(phone),
            operation=operation,
            provider="meta",
            **log_fields,
        )
        headers = {
            "Authorization": f"Bearer {self._settings.access_token}",
            "Content-Type": "application/json",
        }

        started_at = monotonic_ms()
        success = False
        try:
            response = self._session.post(
                self._messages_url,
                json=payload,
                headers=headers,
                timeout=self._settings.http_timeout_seconds,
            )
            raw_response = _parse_body(response)
            span.set_attribute("http.status_code", response.status_code)

            if not response.ok:
                span.set_status(Status(StatusCode.ERROR))
                logger.warning(
                    "whatsapp send rejected by provider",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            "status_code": str(response.status_code),
                            "error": _error_summary(raw_response),
                        }
                    },
                )
                return SendResult(False, None, raw_response)

            success = True
            span.set_status(Status(StatusCode.OK))
            logger.info("whatsapp message sent", extra={"extra_fields": log_ctx})
            return SendResult(True, extract_provider_message_id(raw_response), raw_response)
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR))
            logger.error(
                "whatsapp send failed",
                extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
            )
            raise
        finally:
            self._health.record(DEPENDENCY, operation, monotonic_ms() - started_at, success)


def _error_summary(raw_response: Any) -> str:
    """Provider error code/type only; the body may echo recipient data."""
    if isinstance(raw_response, dict):
        error = raw_response.get("error")
        if isinstance(error, dict):
            return f"{error.get('type', 'unknown')}:{error.get('code', 'unknown')}"
    return "unparsed"
