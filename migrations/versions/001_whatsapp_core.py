"""WhatsApp core schema (SQL-only).

Revision ID: 001_whatsapp_core
Revises:
Create Date: 2026-03-02
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_whatsapp_core"
down_revision = None
branch_labels = None
depends_on = None


def _read_sql(name: str) -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / name
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql("001_whatsapp_core.sql"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        """
        DROP TABLE IF EXISTS whatsapp_click_conversions;
        DROP TABLE IF EXISTS whatsapp_webhook_events;
        DROP TABLE IF EXISTS whatsapp_messages;
        DROP TABLE IF EXISTS whatsapp_conversations;
        DROP TABLE IF EXISTS businesses;
        """
    )
