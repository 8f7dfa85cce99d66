"""Failure isolation for unreliable upstream services."""

from __future__ import annotations

from .circuit_breaker import (
    BreakerSettings,
    BreakerStats,
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from .registry import CircuitBreakerRegistry
from .retry import DEFAULT_BACKOFF, BackoffPolicy, TransientUpstreamError, is_retryable

__all__ = [
    "DEFAULT_BACKOFF",
    "BackoffPolicy",
    "BreakerSettings",
    "BreakerStats",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "TransientUpstreamError",
    "is_retryable",
]
