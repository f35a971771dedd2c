"""Business lookups consumed by the WhatsApp layer.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

_BUSINESS_COLUMNS = """
    id, organization_id, name, slug, address, whatsapp,
    latitude, longitude, ai_auto_responder_enabled, ai_auto_responder_prompt
"""


@dataclass(frozen=True)
class BusinessRecord:
    id: str
    organization_id: str
    name: str
    slug: str | None
    address: str | None
    whatsapp: str | None
    latitude: float | None
    longitude: float | None
    ai_auto_responder_enabled: bool
    ai_auto_responder_prompt: str | None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _to_record(row: tuple) -> BusinessRecord:
    return BusinessRecord(
        id=str(row[0]),
        organization_id=str(row[1]),
        name=row[2],
        slug=row[3],
        address=row[4],
        whatsapp=row[5],
        latitude=float(row[6]) if row[6] is not None else None,
        longitude=float(row[7]) if row[7] is not None else None,
        ai_auto_responder_enabled=bool(row[8]),
        ai_auto_responder_prompt=row[9],
    )


def get_business(cur: PgCursor, business_id: str) -> BusinessRecord | None:
    """Fetch one non-deleted business by id."""
    cur.execute(
        f"""
        SELECT {_BUSINESS_COLUMNS}
        FROM businesses
        WHERE id = %s AND deleted_at IS NULL
        """,
        (business_id,),
    )
    row = cur.fetchone()
    return _to_record(row) if row else None


def search_businesses(
    cur: PgCursor,
    terms: list[str],
    limit: int = 50,
) -> list[BusinessRecord]:
    """Candidate businesses whose name, address or description matches any term.

    Args:
        cur: Database cursor.
        terms: Lowercased search terms (already filtered by the caller).
        limit: Maximum candidates returned.
    """
    if not terms:
        return []

    patterns = [f"%{term}%" for term in terms]
    cur.execute(
        f"""
        SELECT {_BUSINESS_COLUMNS}
        FROM businesses
        WHERE deleted_at IS NULL
          AND (
            name ILIKE ANY(%s)
            OR address ILIKE ANY(%s)
            OR description ILIKE ANY(%s)
          )
        ORDER BY name
        LIMIT %s
        """,
        (patterns, patterns, patterns, limit),
    )
    return [_to_record(row) for row in cur.fetchall()]
