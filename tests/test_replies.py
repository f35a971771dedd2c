"""Tests for reply composition (business auto-reply vs concierge)."""

from aquita.ai.contracts import ConciergeAnswer, ConciergeMatch
from aquita.resilience.circuit_breaker import CircuitOpenError
from aquita.whatsapp.replies import BUSY_REPLY, HANDOFF_SUFFIX, ReplyComposer

from .helpers import BUSINESS_ID, StubAutoReply, StubConcierge, make_business

MATCHES = [
    ConciergeMatch("Pizzeria Roma", "https://aquita.do/businesses/pizzeria-roma"),
    ConciergeMatch(
        "Pollo Rey", "https://aquita.do/businesses/pollo-rey", 18.48, -69.93, "Av. Churchill"
    ),
    ConciergeMatch("Cafe Colonial", "https://aquita.do/businesses/cafe-colonial", 18.47, -69.88),
    ConciergeMatch("Quinto Lugar", "https://aquita.do/businesses/quinto", 18.5, -69.9),
]


def _composer(answer=None, auto_reply=None):
    concierge = StubConcierge(answer or ConciergeAnswer("Encontre opciones.", MATCHES))
    return ReplyComposer(auto_reply or StubAutoReply(), concierge), concierge


class TestBusinessReply:
    def test_auto_reply_with_handoff_and_location(self):
        auto_reply = StubAutoReply("Hola Ana, abrimos a las 8.")
        composer, concierge = _composer(auto_reply=auto_reply)
        business = make_business()

        reply = composer.build_reply("  horario?  ", business, "Ana")

        assert reply.text == f"Hola Ana, abrimos a las 8.\n\n{HANDOFF_SUFFIX}"
        assert reply.location.name == business.name
        assert reply.location.latitude == business.latitude
        assert reply.location.address == business.address
        assert reply.message_type == "mixed"
        assert auto_reply.calls == [(BUSINESS_ID, "horario?", "Ana")]
        assert concierge.calls == []

    def test_business_without_coordinates_is_text_only(self):
        composer, _ = _composer()

        reply = composer.build_reply("hola", make_business(latitude=None), None)

        assert reply.location is None
        assert reply.message_type == "text"

    def test_auto_responder_disabled_uses_concierge(self):
        auto_reply = StubAutoReply()
        composer, concierge = _composer(auto_reply=auto_reply)

        composer.build_reply("pizza", make_business(ai_auto_responder_enabled=False), None)

        assert auto_reply.calls == []
        assert concierge.calls == [("pizza", 5)]


class TestConciergeReply:
    def test_numbers_top_three_and_locates_first_with_coordinates(self):
        composer, _ = _composer()

        reply = composer.build_reply("pizza zona colonial", None)

        assert "1. Pizzeria Roma: https://aquita.do/businesses/pizzeria-roma" in reply.text
        assert "2. Pollo Rey: https://aquita.do/businesses/pollo-rey" in reply.text
        assert "3. Cafe Colonial: https://aquita.do/businesses/cafe-colonial" in reply.text
        assert "Quinto Lugar" not in reply.text
        assert reply.text.startswith("Encontre opciones.\n\nOpciones sugeridas:\n1. ")
        assert reply.location.name == "Pollo Rey"
        assert reply.location.address == "Av. Churchill"

    def test_no_results_has_answer_and_follow_up_only(self):
        composer, _ = _composer(answer=ConciergeAnswer("No encontre nada.", []))

        reply = composer.build_reply("xyz", None)

        assert "Opciones sugeridas" not in reply.text
        assert reply.text.startswith("No encontre nada.")
        assert reply.location is None


class TestOpenCircuit:
    def test_open_circuit_gives_holding_reply(self):
        class OpenConcierge:
            def query(self, query, limit=5):
                raise CircuitOpenError("ai")

        composer = ReplyComposer(StubAutoReply(), OpenConcierge())

        reply = composer.build_reply("pizza", None)

        assert reply.text == BUSY_REPLY
        assert reply.location is None
