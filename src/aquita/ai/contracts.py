"""Reply-generation collaborators consumed by the WhatsApp reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class AutoReply:
    reply: str


@dataclass(frozen=True)
class ConciergeMatch:
    name: str
    link: str
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class ConciergeAnswer:
    answer: str
    data: list[ConciergeMatch] = field(default_factory=list)


class AutoReplyGenerator(Protocol):
    def generate(
        self,
        business_id: str,
        text: str,
        profile_name: str | None = None,
    ) -> AutoReply: ...


class Concierge(Protocol):
    def query(self, query: str, limit: int = 5) -> ConciergeAnswer: ...
