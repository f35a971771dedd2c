"""Meta Cloud API adapter - validate and normalize webhook payloads.

Handles signature verification, the GET verification challenge and
extraction of text-bearing messages. Payloads are untrusted: every level
of the entry -> changes -> value -> messages tree may be missing or have
the wrong type, and such branches are skipped rather than raising.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import re
from typing import Any

from .models import ParsedIncomingMessage

_BUSINESS_MARKER = re.compile(
    r"\bbiz:([0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12})\b",
    re.IGNORECASE,
)


class InvalidWebhookPayload(ValueError):
    """Raised when a webhook body is not a JSON document."""


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""


class WebhookVerificationError(Exception):
    """Raised when the GET verification challenge is rejected."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


def verify_signature(payload_bytes: bytes, signature_header: str, app_secret: str) -> None:
    """Verify Meta webhook signature (HMAC-SHA256, `sha256=<hex>` header).

    Raises:
        SignatureVerificationError: If signature is invalid or missing.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not signature_header.startswith("sha256="):
        raise SignatureVerificationError("invalid signature format")

    computed_sig = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()

    if not hmac.compare_digest(computed_sig, signature_header[7:]):
        raise SignatureVerificationError("signature mismatch")


def verify_challenge(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    expected_token: str | None,
) -> str:
    """Check a webhook subscription request and return the challenge to echo.

    Raises:
        WebhookVerificationError: 400 when params are missing, 403 when the
            mode or token is wrong or no token is configured.
    """
    if not mode or not token or not challenge:
        raise WebhookVerificationError("missing webhook query params", 400)

    if mode != "subscribe":
        raise WebhookVerificationError("invalid webhook mode", 403)

    if not expected_token or not hmac.compare_digest(token, expected_token):
        raise WebhookVerificationError("invalid webhook verification token", 403)

    return challenge


def decode_webhook_body(body: bytes) -> Any:
    """Decode a raw webhook body.

    Raises:
        InvalidWebhookPayload: Empty body or invalid JSON.
    """
    if not body:
        raise InvalidWebhookPayload("empty webhook body")
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidWebhookPayload("webhook body is not valid JSON") from e


def extract_business_id(text: str) -> str | None:
    """Find an embedded `biz:<uuid>` marker. Returns the lowercased id."""
    match = _BUSINESS_MARKER.search(text or "")
    return match.group(1).lower() if match else None


def extract_message_text(message: dict[str, Any]) -> str | None:
    """Resolve the text of one message.

    Precedence: text body, button text, interactive button reply title,
    interactive list reply title. First non-blank wins.
    """
    interactive = _as_dict(message.get("interactive"))
    candidates = (
        _as_dict(message.get("text")).get("body"),
        _as_dict(message.get("button")).get("text"),
        _as_dict(interactive.get("button_reply")).get("title"),
        _as_dict(interactive.get("list_reply")).get("title"),
    )
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def parse_incoming_messages(payload: Any) -> list[ParsedIncomingMessage]:
    """Extract every text-bearing message with a sender, in payload order.

    Messages without a sender or resolvable text (images, status updates)
    are dropped silently.
    """
    parsed: list[ParsedIncomingMessage] = []

    for entry in _as_list(_as_dict(payload).get("entry")):
        for change in _as_list(_as_dict(entry).get("changes")):
            value = _as_dict(_as_dict(change).get("value"))
            if not value:
                continue

            phone_number_id = _as_dict(value.get("metadata")).get("phone_number_id")
            contacts = _as_list(value.get("contacts"))
            profile_name = (
                _as_dict(_as_dict(contacts[0]).get("profile")).get("name") if contacts else None
            )

            for raw_message in _as_list(value.get("messages")):
                message = _as_dict(raw_message)
                from_phone = message.get("from")
                if not isinstance(from_phone, str) or not from_phone:
                    continue

                text = extract_message_text(message)
                if not text:
                    continue

                message_id = message.get("id")
                parsed.append(
                    ParsedIncomingMessage(
                        external_message_id=message_id if isinstance(message_id, str) else None,
                        from_phone=from_phone,
                        to_phone_number_id=phone_number_id if isinstance(phone_number_id, str) else None,
                        text=text,
                        profile_name=profile_name if isinstance(profile_name, str) else None,
                    )
                )

    return parsed


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
