"""WhatsApp message rows (children of a conversation).

Uses raw SQL with psycopg2 (no ORM). Inbound provider message ids are
unique, so a redelivered webhook cannot store the same message twice.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor


def insert_inbound(
    cur: PgCursor,
    *,
    conversation_id: str,
    whatsapp_message_id: str | None,
    sender_phone: str,
    recipient_phone: str | None,
    content: str,
    payload: dict[str, Any] | None,
) -> str | None:
    """Insert an INBOUND/RECEIVED row.

    Returns:
        New row id, or None if this provider message id was already stored.
    """
    cur.execute(
        """
        INSERT INTO whatsapp_messages (
            conversation_id, direction, status, whatsapp_message_id,
            sender_phone, recipient_phone, message_type, content, payload
        )
        VALUES (%s, 'INBOUND', 'RECEIVED', %s, %s, %s, 'text', %s, %s)
        ON CONFLICT (whatsapp_message_id) WHERE direction = 'INBOUND' DO NOTHING
        RETURNING id
        """,
        (
            conversation_id,
            whatsapp_message_id,
            sender_phone,
            recipient_phone,
            content,
            json.dumps(payload) if payload is not None else None,
        ),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def find_inbound(cur: PgCursor, whatsapp_message_id: str) -> tuple[str, str] | None:
    """Returns (row_id, status) of a stored inbound message."""
    cur.execute(
        """
        SELECT id, status
        FROM whatsapp_messages
        WHERE whatsapp_message_id = %s AND direction = 'INBOUND'
        """,
        (whatsapp_message_id,),
    )
    row = cur.fetchone()
    return (str(row[0]), row[1]) if row else None


def mark_inbound_processed(cur: PgCursor, message_row_id: str, *, now: datetime) -> None:
    cur.execute(
        """
        UPDATE whatsapp_messages
        SET status = 'PROCESSED', processed_at = %s
        WHERE id = %s
        """,
        (now, message_row_id),
    )


def insert_outbound(
    cur: PgCursor,
    *,
    conversation_id: str,
    sent: bool,
    whatsapp_message_id: str | None,
    sender_phone: str | None,
    recipient_phone: str,
    message_type: str,
    content: str,
    payload: Any,
    now: datetime,
) -> str:
    """Insert an OUTBOUND row with status SENT or FAILED."""
    cur.execute(
        """
        INSERT INTO whatsapp_messages (
            conversation_id, direction, status, whatsapp_message_id,
            sender_phone, recipient_phone, message_type, content, payload, processed_at
        )
        VALUES (%s, 'OUTBOUND', %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            conversation_id,
            "SENT" if sent else "FAILED",
            whatsapp_message_id,
            sender_phone,
            recipient_phone,
            message_type,
            content,
            json.dumps(payload, default=str) if payload is not None else None,
            now,
        ),
    )
    return str(cur.fetchone()[0])
