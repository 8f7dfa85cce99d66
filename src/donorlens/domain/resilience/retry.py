"""Step-level retry policy: exponential backoff with jitter and transient-error detection."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .circuit_breaker import CircuitOpenError

if TYPE_CHECKING:
    from collections.abc import Callable


class TransientUpstreamError(RuntimeError):
    """An upstream call failed in a way that is worth retrying (5xx, 429, network)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})
_RETRYABLE_MESSAGE = re.compile(
    r"\b(429|50[0234])\b|rate.?limit|too many requests|timed? ?out|timeout"
    r"|econnreset|econnrefused|connection (reset|refused|aborted)|network|temporarily unavailable",
    re.IGNORECASE,
)


def is_retryable(error: BaseException) -> bool:
    """Return whether ``error`` looks transient."""

    if isinstance(error, CircuitOpenError):
        return False
    if isinstance(error, TransientUpstreamError):
        return error.status_code is None or error.status_code in _RETRYABLE_STATUS
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    return bool(_RETRYABLE_MESSAGE.search(str(error)))


@dataclass(slots=True, frozen=True, kw_only=True)
class BackoffPolicy:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.25

    def delay_for(self, attempt: int, *, rand: Callable[[], float] = random.random) -> float:
        """Delay before retry number ``attempt`` (0-based), jittered by +/- ``jitter``."""

        raw = self.base_delay_seconds * (self.multiplier**attempt)
        capped = min(raw, self.max_delay_seconds)
        spread = capped * self.jitter
        return max(0.0, capped + (rand() * 2 - 1) * spread)


DEFAULT_BACKOFF = BackoffPolicy()
