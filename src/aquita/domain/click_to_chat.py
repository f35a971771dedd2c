"""Click-to-chat links that carry a business marker into WhatsApp.

The pre-filled message embeds `[biz:<id>]`, which the inbound webhook uses
to route the customer's first message to the right business.
"""

from __future__ import annotations

import hashlib
import re
from urllib.parse import quote

from psycopg2.extensions import cursor as PgCursor

from aquita.infra.repositories import businesses_repository, click_conversions_repository

WA_ME_BASE_URL = "https://wa.me"
DEFAULT_SOURCE = "web"

_NON_DIGITS = re.compile(r"[^\d]")


class BusinessNotFound(Exception):
    pass


class ClickToChatUnavailable(Exception):
    """Business has no WhatsApp number configured."""


def initial_message(business_id: str) -> str:
    return f"Hola, vi tu negocio en AquiTaDo y quiero info [biz:{business_id}]"


def hash_visitor_id(visitor_id: str) -> str:
    return hashlib.sha256(visitor_id.encode()).hexdigest()[:64]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def create_click_to_chat_link(
    cur: PgCursor,
    *,
    business_id: str,
    source: str | None = None,
    session_id: str | None = None,
    visitor_id: str | None = None,
    variant_key: str | None = None,
    user_id: str | None = None,
) -> dict:
    """Build a wa.me link for a business and record the click.

    Raises:
        BusinessNotFound: Unknown business.
        ClickToChatUnavailable: Business has no WhatsApp number.
    """
    business = businesses_repository.get_business(cur, business_id)
    if business is None:
        raise BusinessNotFound(business_id)
    if not business.whatsapp:
        raise ClickToChatUnavailable(business_id)

    phone_digits = _NON_DIGITS.sub("", business.whatsapp)
    url = f"{WA_ME_BASE_URL}/{phone_digits}?text={quote(initial_message(business.id), safe='')}"
    visitor = _clean(visitor_id)

    conversion_id, clicked_at = click_conversions_repository.insert_click_conversion(
        cur,
        business_id=business.id,
        organization_id=business.organization_id,
        user_id=user_id,
        source=_clean(source) or DEFAULT_SOURCE,
        session_id=_clean(session_id),
        visitor_id_hash=hash_visitor_id(visitor) if visitor else None,
        variant_key=_clean(variant_key),
        target_phone=business.whatsapp,
        metadata={"businessSlug": business.slug, "generatedLink": url},
    )

    return {
        "conversionId": conversion_id,
        "url": url,
        "clickedAt": clicked_at.isoformat(),
    }
