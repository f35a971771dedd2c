"""Database health probes: ping, schema presence, connection usage.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor


def ping(cur: PgCursor) -> None:
    cur.execute("SELECT 1")
    cur.fetchone()


def missing_tables(cur: PgCursor, table_names: list[str]) -> list[str]:
    """Names from `table_names` that do not exist in the public schema."""
    cur.execute(
        """
        SELECT name
        FROM unnest(%s::text[]) AS name
        WHERE to_regclass('public.' || name) IS NULL
        ORDER BY name
        """,
        (table_names,),
    )
    return [row[0] for row in cur.fetchall()]


def connection_usage(cur: PgCursor) -> tuple[int, int]:
    """Returns (active_connections, max_connections) from server statistics."""
    cur.execute(
        """
        SELECT
            (SELECT count(*) FROM pg_stat_activity WHERE datname = current_database()),
            current_setting('max_connections')::int
        """
    )
    row = cur.fetchone()
    return int(row[0]), int(row[1])
