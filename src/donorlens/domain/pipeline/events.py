"""Progress events emitted while a pipeline runs.

Delivery is best effort: observers are called synchronously on the event loop, must
not block, and any exception they raise is logged and dropped so a faulty observer
can never abort a research run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable

log = getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class StepStarted:
    subject_id: str
    step_name: str
    attempt: int


@dataclass(slots=True, frozen=True, kw_only=True)
class StepCompleted:
    subject_id: str
    step_name: str
    duration_ms: int
    tokens_used: int
    from_checkpoint: bool


@dataclass(slots=True, frozen=True, kw_only=True)
class StepFailed:
    subject_id: str
    step_name: str
    error: str
    attempts: int


@dataclass(slots=True, frozen=True, kw_only=True)
class StepWasSkipped:
    subject_id: str
    step_name: str
    reason: str


@dataclass(slots=True, frozen=True, kw_only=True)
class SubjectFinished:
    subject_id: str
    success: bool
    duration_ms: int


type PipelineEvent = StepStarted | StepCompleted | StepFailed | StepWasSkipped | SubjectFinished


@runtime_checkable
class PipelineObserver(Protocol):
    def notify(self, event: PipelineEvent) -> None: ...


def emit(observers: Iterable[PipelineObserver], event: PipelineEvent) -> None:
    for observer in observers:
        try:
            observer.notify(event)
        except Exception:
            log.exception("Pipeline observer %r failed on %s", observer, type(event).__name__)


class LoggingObserver:
    """Writes every event to the ``donorlens.pipeline`` logger."""

    def __init__(self) -> None:
        self._log = getLogger("donorlens.pipeline")

    def notify(self, event: PipelineEvent) -> None:
        if isinstance(event, StepStarted):
            self._log.debug(
                "[%s] %s started (attempt %d)", event.subject_id, event.step_name, event.attempt
            )
        elif isinstance(event, StepCompleted):
            origin = "checkpoint" if event.from_checkpoint else f"{event.duration_ms}ms"
            self._log.info("[%s] %s completed (%s)", event.subject_id, event.step_name, origin)
        elif isinstance(event, StepFailed):
            self._log.warning(
                "[%s] %s failed after %d attempt(s): %s",
                event.subject_id,
                event.step_name,
                event.attempts,
                event.error,
            )
        elif isinstance(event, StepWasSkipped):
            self._log.info("[%s] %s skipped: %s", event.subject_id, event.step_name, event.reason)
        else:
            self._log.info(
                "[%s] finished success=%s in %dms",
                event.subject_id,
                event.success,
                event.duration_ms,
            )


class QueueObserver:
    """Pushes events onto an ``asyncio.Queue`` without ever waiting for room."""

    def __init__(self, queue: asyncio.Queue[PipelineEvent]) -> None:
        self.queue = queue
        self.dropped = 0

    def notify(self, event: PipelineEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("Event queue full, dropping %s", type(event).__name__)
