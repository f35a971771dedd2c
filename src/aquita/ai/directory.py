"""Directory-backed reply collaborators.

Deterministic implementations that answer from the business directory
itself: the concierge ranks businesses by matched search terms and the
auto-reply uses the business's configured prompt. Both run behind the
circuit breaker (key "ai") and report samples under dependency "ai", the
same seam a hosted model provider plugs into.
"""

from __future__ import annotations

import re
from typing import Callable, TypeVar

from aquita.infra.db import txn
from aquita.infra.repositories.businesses_repository import (
    BusinessRecord,
    get_business,
    search_businesses,
)
from aquita.infra.time import monotonic_ms
from aquita.observability.dependency_health import DependencyHealthTracker
from aquita.resilience.circuit_breaker import CircuitBreaker

from .contracts import AutoReply, ConciergeAnswer, ConciergeMatch

T = TypeVar("T")

DEPENDENCY = "ai"
CIRCUIT_KEY = "ai"
MIN_TERM_LENGTH = 3
MAX_TERMS = 8

_WORD = re.compile(r"[\w]+", re.UNICODE)


def search_terms(query: str) -> list[str]:
    """Distinct lowercased words of at least 3 chars, in query order."""
    terms: list[str] = []
    for word in _WORD.findall(query.lower()):
        if len(word) >= MIN_TERM_LENGTH and word not in terms:
            terms.append(word)
    return terms[:MAX_TERMS]


def rank_matches(candidates: list[BusinessRecord], terms: list[str]) -> list[BusinessRecord]:
    """Order by number of distinct terms found in name/address, then name."""

    def score(business: BusinessRecord) -> int:
        haystack = f"{business.name} {business.address or ''}".lower()
        return sum(1 for term in terms if term in haystack)

    return sorted(candidates, key=lambda b: (-score(b), b.name))


class _TrackedCall:
    """Runs a call behind the breaker and records one health sample."""

    def __init__(self, breaker: CircuitBreaker, health: DependencyHealthTracker) -> None:
        self._breaker = breaker
        self._health = health

    def run(self, operation: str, call: Callable[[], T]) -> T:
        def timed() -> T:
            started_at = monotonic_ms()
            success = False
            try:
                result = call()
                success = True
                return result
            finally:
                self._health.record(DEPENDENCY, operation, monotonic_ms() - started_at, success)

        return self._breaker.execute(CIRCUIT_KEY, timed)


class DirectoryConcierge:
    """Answers free-text questions with matching directory businesses."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        health: DependencyHealthTracker,
        web_base_url: str,
        search: Callable[[list[str], int], list[BusinessRecord]] | None = None,
    ) -> None:
        self._calls = _TrackedCall(breaker, health)
        self._web_base_url = web_base_url.rstrip("/")
        self._search = search or _search_directory

    def query(self, query: str, limit: int = 5) -> ConciergeAnswer:
        normalized = query.strip()
        terms = search_terms(normalized)
        candidates = self._calls.run("concierge", lambda: self._search(terms, 50))
        ranked = rank_matches(candidates, terms)[: max(limit, 0)]

        matches = [
            ConciergeMatch(
                name=business.name,
                link=f"{self._web_base_url}/businesses/{business.slug or business.id}",
                latitude=business.latitude,
                longitude=business.longitude,
                address=business.address,
            )
            for business in ranked
        ]

        if matches:
            answer = f'Encontre {len(matches)} opciones para "{normalized}" en AquiTaDo.'
        else:
            answer = (
                f'No encontre negocios para "{normalized}" todavia. '
                "Prueba con otra zona, categoria o el nombre del negocio."
            )
        return ConciergeAnswer(answer=answer, data=matches)


class BusinessPromptAutoReply:
    """Replies on behalf of one business using its configured prompt."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        health: DependencyHealthTracker,
        lookup: Callable[[str], BusinessRecord | None] | None = None,
    ) -> None:
        self._calls = _TrackedCall(breaker, health)
        self._lookup = lookup or _lookup_business

    def generate(
        self,
        business_id: str,
        text: str,
        profile_name: str | None = None,
    ) -> AutoReply:
        business = self._calls.run("auto_reply", lambda: self._lookup(business_id))
        if business is None:
            raise LookupError(f"business not found: {business_id}")

        greeting = f"Hola {profile_name.strip()}!" if profile_name and profile_name.strip() else "Hola!"
        body = (business.ai_auto_responder_prompt or "").strip() or (
            "Recibimos tu mensaje y te responderemos muy pronto."
        )
        return AutoReply(reply=f"{greeting} Gracias por escribir a {business.name}. {body}")


def _search_directory(terms: list[str], limit: int) -> list[BusinessRecord]:
    with txn() as cur:
        return search_businesses(cur, terms, limit)


def _lookup_business(business_id: str) -> BusinessRecord | None:
    with txn() as cur:
        return get_business(cur, business_id)
