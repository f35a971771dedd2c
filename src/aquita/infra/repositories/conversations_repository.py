"""WhatsApp conversation rows.

Uses raw SQL with psycopg2 (no ORM). Natural key is
(organization_id, business_id, customer_phone) with NULL business_id
treated as a value.
"""

from __future__ import annotations

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

CONVERSATION_STATUSES = ("OPEN", "CLOSED", "ESCALATED")


def find_latest_for_phone(cur: PgCursor, customer_phone: str) -> dict | None:
    """Most recent conversation for a phone across all organizations."""
    cur.execute(
        """
        SELECT id, organization_id, business_id
        FROM whatsapp_conversations
        WHERE customer_phone = %s
        ORDER BY last_message_at DESC
        LIMIT 1
        """,
        (customer_phone,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "organization_id": str(row[1]),
        "business_id": str(row[2]) if row[2] is not None else None,
    }


def find_by_natural_key(
    cur: PgCursor,
    *,
    organization_id: str,
    business_id: str | None,
    customer_phone: str,
) -> tuple[str, bool] | None:
    """Returns (conversation_id, auto_responder_active) or None."""
    cur.execute(
        """
        SELECT id, auto_responder_active
        FROM whatsapp_conversations
        WHERE organization_id = %s
          AND business_id IS NOT DISTINCT FROM %s
          AND customer_phone = %s
        """,
        (organization_id, business_id, customer_phone),
    )
    row = cur.fetchone()
    return (str(row[0]), bool(row[1])) if row else None


def touch_conversation(
    cur: PgCursor,
    conversation_id: str,
    *,
    customer_name: str | None,
    now: datetime,
) -> None:
    """Bump last_message_at and refresh the display name when one is known."""
    cur.execute(
        """
        UPDATE whatsapp_conversations
        SET customer_name = COALESCE(%s, customer_name),
            last_message_at = %s,
            updated_at = %s
        WHERE id = %s
        """,
        (customer_name, now, now, conversation_id),
    )


def insert_conversation(
    cur: PgCursor,
    *,
    organization_id: str,
    business_id: str | None,
    customer_phone: str,
    customer_name: str | None,
    now: datetime,
) -> str | None:
    """Insert an OPEN conversation with the auto-responder on.

    Returns:
        New id, or None when a concurrent insert won the unique key.
    """
    cur.execute(
        """
        INSERT INTO whatsapp_conversations (
            organization_id, business_id, customer_phone, customer_name,
            status, auto_responder_active, last_message_at, created_at, updated_at
        )
        VALUES (%s, %s, %s, %s, 'OPEN', TRUE, %s, %s, %s)
        ON CONFLICT (organization_id, business_id, customer_phone) DO NOTHING
        RETURNING id
        """,
        (organization_id, business_id, customer_phone, customer_name, now, now, now),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def list_for_organization(
    cur: PgCursor,
    organization_id: str,
    *,
    status: str | None,
    limit: int,
    offset: int,
) -> list[dict]:
    """Page of conversations with their latest message, newest activity first."""
    cur.execute(
        """
        SELECT c.id, c.business_id, b.name, b.slug, c.customer_phone, c.customer_name,
               c.status, c.auto_responder_active, c.last_message_at,
               m.id, m.direction, m.status, m.content, m.created_at
        FROM whatsapp_conversations c
        LEFT JOIN businesses b ON b.id = c.business_id
        LEFT JOIN LATERAL (
            SELECT id, direction, status, content, created_at
            FROM whatsapp_messages
            WHERE conversation_id = c.id
            ORDER BY created_at DESC
            LIMIT 1
        ) m ON TRUE
        WHERE c.organization_id = %s
          AND (%s::text IS NULL OR c.status = %s)
        ORDER BY c.last_message_at DESC
        LIMIT %s OFFSET %s
        """,
        (organization_id, status, status, limit, offset),
    )
    rows = cur.fetchall()

    return [
        {
            "id": str(row[0]),
            "business": (
                {"id": str(row[1]), "name": row[2], "slug": row[3]} if row[1] is not None else None
            ),
            "customerPhone": row[4],
            "customerName": row[5],
            "status": row[6],
            "autoResponderActive": bool(row[7]),
            "lastMessageAt": row[8].isoformat() if row[8] else None,
            "lastMessage": (
                {
                    "id": str(row[9]),
                    "direction": row[10],
                    "status": row[11],
                    "content": row[12],
                    "createdAt": row[13].isoformat() if row[13] else None,
                }
                if row[9] is not None
                else None
            ),
        }
        for row in rows
    ]


def count_for_organization(cur: PgCursor, organization_id: str, *, status: str | None) -> int:
    cur.execute(
        """
        SELECT count(*)
        FROM whatsapp_conversations
        WHERE organization_id = %s
          AND (%s::text IS NULL OR status = %s)
        """,
        (organization_id, status, status),
    )
    return int(cur.fetchone()[0])


def get_organization_id(cur: PgCursor, conversation_id: str) -> str | None:
    cur.execute(
        "SELECT organization_id FROM whatsapp_conversations WHERE id = %s",
        (conversation_id,),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def update_status(
    cur: PgCursor,
    conversation_id: str,
    *,
    status: str | None,
    auto_responder_active: bool | None,
    now: datetime,
) -> dict:
    """Apply the given fields; None leaves a field unchanged."""
    cur.execute(
        """
        UPDATE whatsapp_conversations
        SET status = COALESCE(%s, status),
            auto_responder_active = COALESCE(%s, auto_responder_active),
            updated_at = %s
        WHERE id = %s
        RETURNING id, status, auto_responder_active, updated_at
        """,
        (status, auto_responder_active, now, conversation_id),
    )
    row = cur.fetchone()
    return {
        "id": str(row[0]),
        "status": row[1],
        "autoResponderActive": bool(row[2]),
        "updatedAt": row[3].isoformat(),
    }
