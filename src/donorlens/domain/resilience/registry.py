"""Registry handing out one shared circuit breaker per service name."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from .circuit_breaker import BreakerSettings, BreakerStats, CircuitBreaker

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .circuit_breaker import Clock


class CircuitBreakerRegistry:
    """Lazily creates breakers from presets and reuses them for the process lifetime.

    Construct one registry at startup and pass it to the pipeline and the claim
    verifier so every subject shares the same breaker per upstream service.
    """

    def __init__(
        self,
        presets: Mapping[str, BreakerSettings] | None = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self._presets: dict[str, BreakerSettings] = dict(presets or {})
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self, name: str, settings: BreakerSettings | None = None
    ) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                effective = settings or self._presets.get(name) or BreakerSettings(name=name)
                if effective.name != name:
                    effective = BreakerSettings(
                        name=name,
                        failure_threshold=effective.failure_threshold,
                        success_threshold=effective.success_threshold,
                        timeout_seconds=effective.timeout_seconds,
                    )
                breaker = CircuitBreaker(effective, clock=self._clock)
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get(name)

    def names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._breakers)

    def stats(self) -> dict[str, BreakerStats]:
        return {breaker.name: breaker.stats() for breaker in self._snapshot()}

    def reset_all(self) -> None:
        for breaker in self._snapshot():
            breaker.reset()

    def has_open_circuits(self) -> bool:
        return any(breaker.is_open() for breaker in self._snapshot())

    def open_circuits(self) -> list[str]:
        return [breaker.name for breaker in self._snapshot() if breaker.is_open()]

    def _snapshot(self) -> list[CircuitBreaker]:
        with self._lock:
            return list(self._breakers.values())
