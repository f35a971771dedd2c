"""Correlation ids tying HTTP requests, webhook deliveries and log lines together."""

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

# Visible across threadpool hops: FastAPI copies the context into sync handlers
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128

_ACCEPTED_ID = re.compile(r"[A-Za-z0-9._:\-]+")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def resolve_correlation_id(header_value: str | None) -> str:
    """Reuse a caller-supplied id when it is short and printable, else mint one.

    Header values end up in every log line, so anything with spaces, control
    characters or excessive length is replaced.
    """
    candidate = (header_value or "").strip()
    if (
        candidate
        and len(candidate) <= MAX_CORRELATION_ID_LENGTH
        and _ACCEPTED_ID.fullmatch(candidate)
    ):
        return candidate
    return generate_correlation_id()


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(cid: str) -> Iterator[str]:
    """Bind `cid` for the duration of the block."""
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
