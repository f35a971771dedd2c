"""Database URL resolution for Alembic.

Kept apart from env.py so it can be tested without an Alembic context.
DATABASE_URL may be a URL or a libpq key=value DSN (the form psycopg2
accepts); DB_PASSWORD fills in a missing password in either form.
"""

from __future__ import annotations

import os
import re
from urllib.parse import quote_plus, urlparse, urlunparse

SQLALCHEMY_SCHEME = "postgresql+psycopg2"

# key=value or key='quoted value' with backslash escapes
_DSN_TOKEN = re.compile(r"(\w+)\s*=\s*(?:'((?:[^'\\]|\\.)*)'|(\S*))")
_ESCAPE = re.compile(r"\\(.)")


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Split a libpq DSN into its keywords."""
    params: dict[str, str] = {}
    for match in _DSN_TOKEN.finditer(dsn):
        key, quoted, bare = match.groups()
        params[key] = _ESCAPE.sub(r"\1", quoted) if quoted is not None else bare
    return params


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq DSN to a SQLAlchemy URL.

    A host starting with "/" is a Unix socket directory and moves to the
    query string; otherwise host and port (default 5432) form the netloc.
    """
    params = parse_libpq_dsn(dsn)
    password = params.get("password") or os.environ.get("DB_PASSWORD", "")

    credentials = f"{quote_plus(params.get('user', ''))}:{quote_plus(password)}"
    dbname = quote_plus(params.get("dbname", ""))
    host = params.get("host", "localhost")

    if host.startswith("/"):
        return f"{SQLALCHEMY_SCHEME}://{credentials}@/{dbname}?host={quote_plus(host)}"
    return f"{SQLALCHEMY_SCHEME}://{credentials}@{host}:{params.get('port', '5432')}/{dbname}"


def _normalize_url(url: str) -> str:
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = f"{SQLALCHEMY_SCHEME}://" + url[len(prefix):]
            break

    db_password = os.environ.get("DB_PASSWORD", "")
    parsed = urlparse(url)
    if not db_password or parsed.password:
        return url

    netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(db_password)}@{parsed.hostname or ''}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    if "://" in url:
        return _normalize_url(url)
    return libpq_dsn_to_url(url)
