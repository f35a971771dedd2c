"""Conversation domain logic - find-or-create, inbox listing, status changes."""

from __future__ import annotations

import math
from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

from aquita.infra.repositories import conversations_repository as repo
from aquita.infra.time import utc_now

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class ConversationNotFound(Exception):
    """Conversation does not exist or belongs to another organization."""


@dataclass(frozen=True)
class ConversationRef:
    id: str
    auto_responder_active: bool
    created: bool


def find_or_create_conversation(
    cur: PgCursor,
    *,
    organization_id: str,
    business_id: str | None,
    customer_phone: str,
    customer_name: str | None,
) -> ConversationRef:
    """Find the conversation for (organization, business, phone) or open one.

    Existing conversations get their display name refreshed and
    last_message_at bumped. A new one starts OPEN with the auto-responder on.
    If a concurrent delivery inserts the same key first, the unique index
    rejects our insert and the winner's row is returned.

    Args:
        cur: Database cursor (within transaction).
        organization_id: Owning organization.
        business_id: Business context, or None for an org-level conversation.
        customer_phone: Sender phone as delivered by the provider.
        customer_name: Provider profile name, if any.

    Returns:
        ConversationRef with created=True only for a fresh insert.
    """
    now = utc_now()

    existing = repo.find_by_natural_key(
        cur,
        organization_id=organization_id,
        business_id=business_id,
        customer_phone=customer_phone,
    )
    if existing is None:
        created_id = repo.insert_conversation(
            cur,
            organization_id=organization_id,
            business_id=business_id,
            customer_phone=customer_phone,
            customer_name=customer_name,
            now=now,
        )
        if created_id is not None:
            return ConversationRef(id=created_id, auto_responder_active=True, created=True)

        existing = repo.find_by_natural_key(
            cur,
            organization_id=organization_id,
            business_id=business_id,
            customer_phone=customer_phone,
        )
        if existing is None:
            raise RuntimeError("conversation insert conflicted but no row is visible")

    conversation_id, auto_responder_active = existing
    repo.touch_conversation(cur, conversation_id, customer_name=customer_name, now=now)
    return ConversationRef(
        id=conversation_id,
        auto_responder_active=auto_responder_active,
        created=False,
    )


def list_organization_conversations(
    cur: PgCursor,
    organization_id: str,
    *,
    status: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict:
    """Paginated inbox for one organization.

    Returns:
        {"data", "total", "page", "limit", "totalPages"}; totalPages >= 1.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    data = repo.list_for_organization(
        cur,
        organization_id,
        status=status,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total = repo.count_for_organization(cur, organization_id, status=status)

    return {
        "data": data,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": max(math.ceil(total / limit), 1),
    }


def update_conversation_status(
    cur: PgCursor,
    organization_id: str,
    conversation_id: str,
    *,
    status: str | None = None,
    auto_responder_active: bool | None = None,
) -> dict:
    """Change status and/or the auto-responder flag.

    Raises:
        ConversationNotFound: Unknown id, or owned by another organization.
        ValueError: Unknown status value.
    """
    if status is not None and status not in repo.CONVERSATION_STATUSES:
        raise ValueError(f"invalid conversation status: {status}")

    owner = repo.get_organization_id(cur, conversation_id)
    if owner is None or owner != organization_id:
        raise ConversationNotFound(conversation_id)

    return repo.update_status(
        cur,
        conversation_id,
        status=status,
        auto_responder_active=auto_responder_active,
        now=utc_now(),
    )
