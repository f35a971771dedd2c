"""Compose the reply text (and optional location pin) for one inbound message."""

from __future__ import annotations

from aquita.ai.contracts import AutoReplyGenerator, Concierge
from aquita.infra.repositories.businesses_repository import BusinessRecord
from aquita.resilience.circuit_breaker import CircuitOpenError

from .models import ComposedReply, ReplyLocation

HANDOFF_SUFFIX = "Para hablar con el equipo, responde a este chat y te asistimos."
CONCIERGE_FOLLOW_UP = "Si quieres, dime presupuesto, zona o tipo de comida y lo afinamos."
BUSY_REPLY = (
    "Ahora mismo no podemos responder automaticamente. "
    "Te escribimos en cuanto el asistente este disponible."
)
CONCIERGE_LIMIT = 5
MAX_SUGGESTIONS = 3


class ReplyComposer:
    """Chooses between the business auto-reply and the directory concierge.

    A business with the auto-responder enabled answers for itself; every
    other message goes to the concierge. An open "ai" circuit yields a short
    holding reply instead of failing the delivery.
    """

    def __init__(self, auto_reply: AutoReplyGenerator, concierge: Concierge) -> None:
        self._auto_reply = auto_reply
        self._concierge = concierge

    def build_reply(
        self,
        text: str,
        business: BusinessRecord | None,
        profile_name: str | None = None,
    ) -> ComposedReply:
        normalized = text.strip()
        try:
            if business is not None and business.ai_auto_responder_enabled:
                return self._business_reply(normalized, business, profile_name)
            return self._concierge_reply(normalized)
        except CircuitOpenError:
            return ComposedReply(text=BUSY_REPLY)

    def _business_reply(
        self,
        text: str,
        business: BusinessRecord,
        profile_name: str | None,
    ) -> ComposedReply:
        generated = self._auto_reply.generate(business.id, text, profile_name)
        reply_text = f"{generated.reply}\n\n{HANDOFF_SUFFIX}"

        if not business.has_coordinates:
            return ComposedReply(text=reply_text)

        return ComposedReply(
            text=reply_text,
            location=ReplyLocation(
                latitude=business.latitude,
                longitude=business.longitude,
                name=business.name,
                address=business.address,
            ),
        )

    def _concierge_reply(self, text: str) -> ComposedReply:
        result = self._concierge.query(text, CONCIERGE_LIMIT)
        top = result.data[:MAX_SUGGESTIONS]

        links = "\n".join(f"{index}. {match.name}: {match.link}" for index, match in enumerate(top, 1))
        reply_text = "\n".join(
            [
                result.answer,
                f"\nOpciones sugeridas:\n{links}" if links else "",
                f"\n{CONCIERGE_FOLLOW_UP}",
            ]
        )

        first_located = next((match for match in top if match.has_coordinates), None)
        if first_located is None:
            return ComposedReply(text=reply_text)

        return ComposedReply(
            text=reply_text,
            location=ReplyLocation(
                latitude=first_located.latitude,
                longitude=first_located.longitude,
                name=first_located.name,
                address=first_located.address,
            ),
        )
