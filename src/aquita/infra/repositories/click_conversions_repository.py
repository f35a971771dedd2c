"""Click-to-chat conversion rows.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor


def insert_click_conversion(
    cur: PgCursor,
    *,
    business_id: str,
    organization_id: str,
    user_id: str | None,
    source: str,
    session_id: str | None,
    visitor_id_hash: str | None,
    variant_key: str | None,
    target_phone: str,
    metadata: dict[str, Any],
) -> tuple[str, datetime]:
    """Returns (conversion_id, clicked_at)."""
    cur.execute(
        """
        INSERT INTO whatsapp_click_conversions (
            business_id, organization_id, user_id, source, session_id,
            visitor_id_hash, variant_key, target_phone, metadata
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id, clicked_at
        """,
        (
            business_id,
            organization_id,
            user_id,
            source,
            session_id,
            visitor_id_hash,
            variant_key,
            target_phone,
            json.dumps(metadata),
        ),
    )
    row = cur.fetchone()
    return str(row[0]), row[1]
