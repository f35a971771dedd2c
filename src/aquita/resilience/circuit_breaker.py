"""Fail-fast guard for calls to external services.

One consecutive-failure counter per key. When the counter reaches the
threshold the circuit opens for a cooldown period; calls for that key then
fail immediately with CircuitOpenError without invoking the operation. The
first call after the cooldown goes through and either closes the circuit
(success) or restarts the count at one (failure).

There is no isolated half-open trial: a burst right after cooldown can all
pass through before the circuit reopens.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

from aquita.infra.time import epoch_ms
from aquita.observability.logging import get_logger
from aquita.observability.redaction import safe_log_context

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitOpenError(Exception):
    """Raised when the circuit for `key` is open (service unavailable)."""

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f'external service "{key}" is temporarily unavailable')
        self.key = key


@dataclass(frozen=True)
class CircuitState:
    failures: int = 0
    opened_until: float = 0.0

    def is_open(self, now_ms: float) -> bool:
        return self.opened_until > now_ms


@dataclass(frozen=True)
class CallSucceeded(Generic[T]):
    value: T


@dataclass(frozen=True)
class CircuitOpen:
    key: str


@dataclass(frozen=True)
class UpstreamFailed:
    error: Exception


CallResult = Union[CallSucceeded[T], CircuitOpen, UpstreamFailed]

_CLOSED = CircuitState()


class CircuitBreaker:
    """Per-key circuit breaker with in-memory state.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        cooldown_ms: How long an open circuit rejects calls.
        clock: Epoch-milliseconds source (injectable for tests).
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_ms: int = 60_000,
        clock: Callable[[], float] = epoch_ms,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        if cooldown_ms <= 0:
            raise ValueError("cooldown_ms must be positive")
        self.failure_threshold = failure_threshold
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, CircuitState] = {}

    def get_state(self, key: str) -> CircuitState:
        with self._lock:
            return self._states.get(key, _CLOSED)

    def execute(self, key: str, operation: Callable[[], T]) -> T:
        """Run `operation` under the circuit for `key`.

        Raises:
            CircuitOpenError: Circuit is open, or this failure opened it
                              (the original error is dropped in that case).
            Exception: The operation's own error while below the threshold.
        """
        now = self._clock()
        state = self.get_state(key)

        if state.is_open(now):
            raise CircuitOpenError(key, f'external service "{key}" is protected by circuit breaker')

        try:
            result = operation()
        except Exception:
            if self._register_failure(key):
                raise CircuitOpenError(key) from None
            raise

        if state.failures > 0 or state.opened_until > 0:
            with self._lock:
                self._states[key] = _CLOSED
        return result

    def execute_result(self, key: str, operation: Callable[[], T]) -> CallResult[T]:
        """Like execute(), but returns a tagged result instead of raising."""
        try:
            return CallSucceeded(self.execute(key, operation))
        except CircuitOpenError as e:
            return CircuitOpen(e.key)
        except Exception as e:
            return UpstreamFailed(e)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._states.clear()
            else:
                self._states.pop(key, None)

    def _register_failure(self, key: str) -> bool:
        """Count one failure for `key`. Returns True if the circuit opened."""
        now = self._clock()
        with self._lock:
            current = self._states.get(key, _CLOSED)
            if current.is_open(now):
                # A concurrent call already opened it
                return False

            failures = current.failures + 1
            if failures < self.failure_threshold:
                self._states[key] = CircuitState(failures=failures, opened_until=0.0)
                return False

            self._states[key] = CircuitState(failures=0, opened_until=now + self.cooldown_ms)

        logger.warning(
            "circuit breaker opened",
            extra={
                "extra_fields": safe_log_context(
                    key=key,
                    cooldown_ms=self.cooldown_ms,
                    failure_threshold=self.failure_threshold,
                )
            },
        )
        return True
