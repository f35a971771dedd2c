"""Webhook delivery log: RECEIVED -> PROCESSED | FAILED, written once.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

MAX_ERROR_MESSAGE_CHARS = 500


def create_event(cur: PgCursor, *, payload: Any, source: str = "meta") -> str:
    cur.execute(
        """
        INSERT INTO whatsapp_webhook_events (source, payload, processing_status)
        VALUES (%s, %s, 'RECEIVED')
        RETURNING id
        """,
        (source, json.dumps(payload if payload is not None else {}, default=str)),
    )
    return str(cur.fetchone()[0])


def mark_processed(
    cur: PgCursor,
    event_id: str,
    *,
    external_event_id: str | None,
    now: datetime,
) -> None:
    cur.execute(
        """
        UPDATE whatsapp_webhook_events
        SET processing_status = 'PROCESSED',
            external_event_id = %s,
            processed_at = %s,
            updated_at = %s
        WHERE id = %s AND processing_status = 'RECEIVED'
        """,
        (external_event_id, now, now, event_id),
    )


def mark_failed(cur: PgCursor, event_id: str, *, error_message: str, now: datetime) -> None:
    cur.execute(
        """
        UPDATE whatsapp_webhook_events
        SET processing_status = 'FAILED',
            error_message = %s,
            processed_at = %s,
            updated_at = %s
        WHERE id = %s AND processing_status = 'RECEIVED'
        """,
        (error_message[:MAX_ERROR_MESSAGE_CHARS], now, now, event_id),
    )
