"""Runs a single step: checkpoint reuse, skip rules, breaker gating, timeout and retry."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from donorlens.domain.checkpoints import StepMeta
from donorlens.domain.resilience import DEFAULT_BACKOFF, CircuitOpenError, is_retryable

from .events import StepCompleted, StepFailed, StepStarted, StepWasSkipped, emit
from .steps import (
    CompletedStep,
    FailedStep,
    SkippedStep,
    SkipReason,
    StepSkipped,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from donorlens.domain.ports.checkpoints import CheckpointStore
    from donorlens.domain.resilience import BackoffPolicy, CircuitBreaker, CircuitBreakerRegistry

    from .events import PipelineObserver
    from .steps import StepContext, StepDefinition, StepOutput, StepResult

log = getLogger(__name__)


@dataclass(slots=True)
class StepExecutor:
    store: CheckpointStore
    breakers: CircuitBreakerRegistry
    backoff: BackoffPolicy = DEFAULT_BACKOFF
    default_timeout_seconds: float = 60.0
    observers: Sequence[PipelineObserver] = ()
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)
    clock: Callable[[], float] = field(default=time.monotonic)

    async def execute(
        self,
        step: StepDefinition,
        context: StepContext,
        *,
        force: bool = False,
        run_optional: bool = True,
    ) -> StepResult:
        subject_id = context.subject.subject_id

        if not force and self.store.has_completed(subject_id, step.name):
            record = self.store.get_checkpoint(subject_id, step.name)
            tokens = record.tokens_used if record is not None else 0
            duration = (record.duration_ms or 0) if record is not None else 0
            emit(
                self.observers,
                StepCompleted(
                    subject_id=subject_id,
                    step_name=step.name,
                    duration_ms=duration,
                    tokens_used=tokens,
                    from_checkpoint=True,
                ),
            )
            return CompletedStep(
                step_name=step.name,
                data=self.store.get_result(subject_id, step.name),
                tokens_used=tokens,
                duration_ms=duration,
                from_checkpoint=True,
            )

        if step.skip_reason is not None:
            return self.skip(subject_id, step.name, step.skip_reason)
        if step.skippable and not run_optional:
            return self.skip(subject_id, step.name, SkipReason.OPTIONAL_STEPS_DISABLED)
        if step.skip_when is not None and step.skip_when(context):
            return self.skip(subject_id, step.name, SkipReason.SKIP_CONDITION_MET)

        breaker = self.breakers.get_or_create(step.breaker) if step.breaker else None
        if breaker is not None and not breaker.can_attempt():
            return self.skip(subject_id, step.name, SkipReason.CIRCUIT_BREAKER_OPEN)

        return await self._run(step, context, breaker)

    def skip(self, subject_id: str, step_name: str, reason: str) -> SkippedStep:
        """Record ``step_name`` as skipped and return the matching result."""

        self.store.mark_skipped(subject_id, step_name, str(reason))
        emit(
            self.observers,
            StepWasSkipped(subject_id=subject_id, step_name=step_name, reason=str(reason)),
        )
        return SkippedStep(step_name=step_name, reason=str(reason))

    async def _run(
        self,
        step: StepDefinition,
        context: StepContext,
        breaker: CircuitBreaker | None,
    ) -> StepResult:
        subject_id = context.subject.subject_id
        timeout = step.timeout_seconds or self.default_timeout_seconds
        started = self.clock()
        max_attempts = 1 + max(0, self.backoff.max_retries)
        last_error = "unknown error"
        attempt = 0

        while attempt < max_attempts:
            attempt += 1
            self.store.mark_processing(subject_id, step.name)
            emit(
                self.observers,
                StepStarted(subject_id=subject_id, step_name=step.name, attempt=attempt),
            )
            try:
                outcome = await self._invoke(step, context, breaker, timeout)
            except CircuitOpenError:
                return self.skip(subject_id, step.name, SkipReason.CIRCUIT_BREAKER_OPEN)
            except TimeoutError:
                last_error = f"Step {step.name} timed out after {timeout:g}s"
                log.warning("[%s] %s", subject_id, last_error)
                retryable = True
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                retryable = is_retryable(exc)
                log.warning(
                    "[%s] %s attempt %d/%d failed: %s",
                    subject_id,
                    step.name,
                    attempt,
                    max_attempts,
                    last_error,
                )
            else:
                if isinstance(outcome, StepSkipped):
                    return self.skip(subject_id, step.name, outcome.reason)
                return self._complete(subject_id, step.name, outcome, started)

            if not retryable or attempt >= max_attempts:
                break
            delay = self.backoff.delay_for(attempt - 1)
            log.debug("[%s] retrying %s in %.2fs", subject_id, step.name, delay)
            await self.sleep(delay)

        duration_ms = self._elapsed_ms(started)
        self.store.mark_failed(subject_id, step.name, last_error)
        emit(
            self.observers,
            StepFailed(
                subject_id=subject_id, step_name=step.name, error=last_error, attempts=attempt
            ),
        )
        return FailedStep(
            step_name=step.name, error=last_error, attempts=attempt, duration_ms=duration_ms
        )

    async def _invoke(
        self,
        step: StepDefinition,
        context: StepContext,
        breaker: CircuitBreaker | None,
        timeout: float,
    ) -> StepOutput | StepSkipped:
        async def attempt() -> StepOutput | StepSkipped:
            # a self-skip is a successful call as far as the breaker is concerned
            try:
                return await step.run(context)
            except StepSkipped as skipped:
                return skipped

        # timeouts count as breaker failures
        async def call() -> StepOutput | StepSkipped:
            return await asyncio.wait_for(attempt(), timeout)

        if breaker is None:
            return await call()
        return await breaker.execute(call)

    def _complete(
        self, subject_id: str, step_name: str, output: StepOutput, started: float
    ) -> CompletedStep:
        duration_ms = self._elapsed_ms(started)
        self.store.save_result(
            subject_id,
            step_name,
            output.data,
            StepMeta(tokens_used=output.tokens_used, duration_ms=duration_ms),
        )
        emit(
            self.observers,
            StepCompleted(
                subject_id=subject_id,
                step_name=step_name,
                duration_ms=duration_ms,
                tokens_used=output.tokens_used,
                from_checkpoint=False,
            ),
        )
        return CompletedStep(
            step_name=step_name,
            data=output.data,
            tokens_used=output.tokens_used,
            duration_ms=duration_ms,
            sources_found=output.sources_found,
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.clock() - started) * 1000))
