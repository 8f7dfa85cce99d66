"""Per-dependency circuit breaker.

A breaker counts consecutive failures of one upstream service. Once
``failure_threshold`` failures pile up it opens and rejects calls without touching
the service. The cool-down is evaluated lazily: the first ``can_attempt()`` or
``is_open()`` call after ``timeout_seconds`` moves the breaker to ``half_open`` and
lets trial calls through. ``success_threshold`` consecutive successes close it
again; a single failure while half open re-opens it.

Breakers are shared by every subject that talks to the same service, so all
counter updates happen under a per-instance lock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = getLogger(__name__)

type Clock = Callable[[], float]
type StateListener = Callable[[str, CircuitState, CircuitState], None]


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(slots=True, frozen=True, kw_only=True)
class BreakerSettings:
    name: str
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ValueError("Breaker thresholds must be at least 1")
        if self.timeout_seconds < 0:
            raise ValueError("Breaker timeout must be non-negative")


@dataclass(slots=True, frozen=True, kw_only=True)
class BreakerStats:
    name: str
    state: CircuitState
    consecutive_failures: int
    consecutive_successes: int
    opened_at: float | None
    last_failure_at: float | None
    last_success_at: float | None
    total_calls: int
    total_successes: int
    total_failures: int
    total_rejections: int


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a service whose breaker is open."""

    def __init__(self, service_name: str, *, retry_after_seconds: float) -> None:
        super().__init__(
            f"Circuit breaker for {service_name} is open; "
            f"retry after {retry_after_seconds:.1f}s"
        )
        self.service_name = service_name
        self.retry_after_seconds = retry_after_seconds


class CircuitBreaker:
    def __init__(self, settings: BreakerSettings, *, clock: Clock = time.monotonic) -> None:
        self.settings = settings
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: list[StateListener] = []
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._opened_at: float | None = None
        self._last_failure_at: float | None = None
        self._last_success_at: float | None = None
        self._total_calls = 0
        self._total_successes = 0
        self._total_failures = 0
        self._total_rejections = 0

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def state(self) -> CircuitState:
        """Current state without applying the cool-down check."""

        return self._state

    def can_attempt(self) -> bool:
        with self._lock:
            self._check_timeout()
            return self._state is not CircuitState.OPEN

    def is_open(self) -> bool:
        return not self.can_attempt()

    def time_until_close(self) -> float:
        """Seconds left before an open breaker admits a trial call (0 when not open)."""

        with self._lock:
            if self._state is not CircuitState.OPEN or self._opened_at is None:
                return 0.0
            elapsed = self._clock() - self._opened_at
            return max(0.0, self.settings.timeout_seconds - elapsed)

    def record_success(self) -> None:
        with self._lock:
            now = self._clock()
            self._total_calls += 1
            self._total_successes += 1
            self._last_success_at = now
            self._consecutive_failures = 0
            self._consecutive_successes += 1
            if (
                self._state is CircuitState.HALF_OPEN
                and self._consecutive_successes >= self.settings.success_threshold
            ):
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._total_calls += 1
            self._total_failures += 1
            self._last_failure_at = now
            self._consecutive_successes = 0
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN or (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.settings.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    async def execute[T](self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func`` through the breaker, re-raising whatever it raises."""

        if not self.can_attempt():
            with self._lock:
                self._total_rejections += 1
            raise CircuitOpenError(self.name, retry_after_seconds=self.time_until_close())
        try:
            result = await func()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED)

    def force_open(self) -> None:
        with self._lock:
            self._transition(CircuitState.OPEN)

    def on_state_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def stats(self) -> BreakerStats:
        with self._lock:
            self._check_timeout()
            return BreakerStats(
                name=self.name,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                consecutive_successes=self._consecutive_successes,
                opened_at=self._opened_at,
                last_failure_at=self._last_failure_at,
                last_success_at=self._last_success_at,
                total_calls=self._total_calls,
                total_successes=self._total_successes,
                total_failures=self._total_failures,
                total_rejections=self._total_rejections,
            )

    def _check_timeout(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.settings.timeout_seconds:
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
            self._consecutive_successes = 0
            log.warning(
                "Circuit %s opened after %d consecutive failures",
                self.name,
                self._consecutive_failures,
            )
        elif new_state is CircuitState.HALF_OPEN:
            self._consecutive_successes = 0
            log.info("Circuit %s half-open, admitting trial calls", self.name)
        else:
            self._consecutive_failures = 0
            self._consecutive_successes = 0
            self._opened_at = None
            if old_state is not CircuitState.CLOSED:
                log.info("Circuit %s closed", self.name)
        if old_state is not new_state:
            self._notify(old_state, new_state)

    def _notify(self, old_state: CircuitState, new_state: CircuitState) -> None:
        for listener in self._listeners:
            try:
                listener(self.name, old_state, new_state)
            except Exception:
                log.exception("Breaker listener failed for %s", self.name)
