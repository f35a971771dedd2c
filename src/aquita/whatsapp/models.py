"""WhatsApp message models."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ParsedIncomingMessage:
    """One inbound text-bearing message extracted from a webhook payload.

    `from_phone` and `text` are PII: keep in memory and in the store only,
    never in logs.
    """

    external_message_id: str | None
    from_phone: str
    to_phone_number_id: str | None
    text: str
    profile_name: str | None


@dataclass(frozen=True)
class SendResult:
    """Outcome of a single outbound send.

    sent=False is not an error by itself: invalid input and the disabled
    provider both return normally with a reason in raw_response.
    """

    sent: bool
    provider_message_id: str | None
    raw_response: Any

    @property
    def reason(self) -> str | None:
        if isinstance(self.raw_response, dict):
            reason = self.raw_response.get("reason")
            return reason if isinstance(reason, str) else None
        return None


@dataclass(frozen=True)
class ReplyLocation:
    latitude: float
    longitude: float
    name: str
    address: str | None = None


@dataclass(frozen=True)
class ComposedReply:
    text: str
    location: ReplyLocation | None = None

    @property
    def message_type(self) -> str:
        return "mixed" if self.location else "text"
