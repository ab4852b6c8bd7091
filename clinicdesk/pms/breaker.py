"""Fixed-threshold circuit breaker keyed by logical endpoint.

Policy
------
* **closed**: every call is attempted.
* **open**: after ``failure_threshold`` consecutive failures the endpoint
  fast-fails with :class:`CircuitOpenError`.
* Once ``cooldown_seconds`` have passed since the last failure, the next
  call goes through.  Success closes the breaker; failure keeps it open and
  restarts the cooldown.

State is held on the breaker instance, so its lifetime is whatever owns it
(a single adapter, or the process-wide instance from
:func:`get_circuit_breaker`).  There is no cross-process sharing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from clinicdesk.config import BREAKER_COOLDOWN_SECONDS, BREAKER_FAILURE_THRESHOLD
from clinicdesk.pms.interface import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class EndpointState:
    failures: int = 0
    last_failure_time: float = 0.0
    is_open: bool = False


class CircuitBreaker:
    """Per-endpoint failure counter with a fixed cooldown."""

    def __init__(
        self,
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        cooldown_seconds: float = BREAKER_COOLDOWN_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: dict[str, EndpointState] = {}
        self._lock = threading.Lock()

    def _state(self, endpoint: str) -> EndpointState:
        state = self._states.get(endpoint)
        if state is None:
            state = self._states[endpoint] = EndpointState()
        return state

    # ── Policy ───────────────────────────────────────────────────────

    def allow_request(self, endpoint: str) -> bool:
        """Return ``True`` if a call to *endpoint* may be attempted now."""
        with self._lock:
            state = self._state(endpoint)
            if not state.is_open:
                return True
            if self._clock() - state.last_failure_time >= self.cooldown_seconds:
                logger.info("Circuit breaker half-open for %s, allowing a trial call", endpoint)
                return True
            return False

    def record_success(self, endpoint: str) -> None:
        with self._lock:
            state = self._state(endpoint)
            if state.is_open:
                logger.info("Circuit breaker closed for %s", endpoint)
            state.failures = 0
            state.is_open = False

    def record_failure(self, endpoint: str) -> None:
        with self._lock:
            state = self._state(endpoint)
            state.failures += 1
            state.last_failure_time = self._clock()
            if state.failures >= self.failure_threshold and not state.is_open:
                state.is_open = True
                logger.warning(
                    "Circuit breaker opened for %s after %d failures",
                    endpoint, state.failures,
                )

    def call(self, endpoint: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run *func* under the breaker for *endpoint*."""
        if not self.allow_request(endpoint):
            raise CircuitOpenError(
                f"Circuit breaker is open for {endpoint}. Service may be unavailable."
            )
        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure(endpoint)
            raise
        self.record_success(endpoint)
        return result

    # ── Introspection ────────────────────────────────────────────────

    def is_open(self, endpoint: str) -> bool:
        with self._lock:
            return self._state(endpoint).is_open

    def failures(self, endpoint: str) -> int:
        with self._lock:
            return self._state(endpoint).failures

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Per-endpoint state for the debug endpoint.

        ``last_failure`` is reported as wall-clock ISO time, converted from
        the monotonic stamp.
        """
        now_mono = self._clock()
        now_wall = time.time()
        out: dict[str, dict[str, Any]] = {}
        with self._lock:
            for endpoint, state in self._states.items():
                last = None
                if state.last_failure_time:
                    wall = now_wall - (now_mono - state.last_failure_time)
                    last = datetime.fromtimestamp(wall, UTC).isoformat()
                out[endpoint] = {
                    "state": "open" if state.is_open else "closed",
                    "failures": state.failures,
                    "last_failure": last,
                }
        return out

    def reset(self) -> None:
        with self._lock:
            self._states.clear()


# ── Module-level singleton (thread-safe) ────────────────────────────
_breaker: CircuitBreaker | None = None
_breaker_lock = threading.Lock()


def get_circuit_breaker() -> CircuitBreaker:
    """Return the process-wide breaker shared by adapters built per request.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation.
    """
    global _breaker
    if _breaker is None:
        with _breaker_lock:
            if _breaker is None:
                _breaker = CircuitBreaker()
    return _breaker
