"""Time utilities for consistent timestamp handling."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def epoch_ms() -> float:
    """Return wall-clock epoch milliseconds."""
    return time.time() * 1000


def monotonic_ms() -> float:
    """Return monotonic milliseconds, for measuring durations."""
    return time.monotonic() * 1000
