from __future__ import annotations

import asyncio

import pytest

from donorlens.adapters.memory import InMemoryCheckpointStore
from donorlens.domain.checkpoints import StepMeta, StepStatus
from donorlens.domain.pipeline import (
    CompletedStep,
    FailedStep,
    PipelineEvent,
    QueueObserver,
    SkippedStep,
    SkipReason,
    StepCompleted,
    StepContext,
    StepDefinition,
    StepExecutor,
    StepOutput,
    StepSkipped,
    StepStarted,
)
from donorlens.domain.resilience import (
    BackoffPolicy,
    CircuitBreakerRegistry,
    TransientUpstreamError,
)
from donorlens.domain.subject import SubjectContext
from tests.support.fakes import RecordingSleep


def _executor(
    store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    *,
    max_retries: int = 0,
    sleep: RecordingSleep | None = None,
    observers: tuple[QueueObserver, ...] = (),
) -> StepExecutor:
    return StepExecutor(
        store=store,
        breakers=breakers,
        backoff=BackoffPolicy(max_retries=max_retries, jitter=0.0),
        default_timeout_seconds=5.0,
        observers=observers,
        sleep=sleep or RecordingSleep(),
    )


class FlakyStep:
    def __init__(self, failures: list[Exception], output: StepOutput) -> None:
        self.failures = failures
        self.output = output
        self.calls = 0

    async def __call__(self, context: StepContext) -> StepOutput:
        del context
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.output


def test_completed_step_is_checkpointed(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    step = FlakyStep([], StepOutput(data={"answer": 42}, tokens_used=120, sources_found=3))
    executor = _executor(memory_store, breakers)

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, CompletedStep)
    assert result.data == {"answer": 42}
    assert result.tokens_used == 120
    assert result.sources_found == 3
    assert not result.from_checkpoint
    assert memory_store.get_result(subject.subject_id, "search") == {"answer": 42}
    record = memory_store.get_checkpoint(subject.subject_id, "search")
    assert record is not None
    assert record.tokens_used == 120
    assert record.attempts == 1


def test_completed_checkpoint_is_reused_without_running(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    memory_store.save_result(
        subject.subject_id, "search", {"cached": True}, StepMeta(tokens_used=7, duration_ms=12)
    )
    step = FlakyStep([], StepOutput(data={"cached": False}))
    executor = _executor(memory_store, breakers)

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, CompletedStep)
    assert result.from_checkpoint
    assert result.data == {"cached": True}
    assert result.tokens_used == 7
    assert step.calls == 0


def test_force_reruns_completed_steps(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    memory_store.save_result(subject.subject_id, "search", {"cached": True}, StepMeta())
    step = FlakyStep([], StepOutput(data={"cached": False}))
    executor = _executor(memory_store, breakers)

    result = asyncio.run(
        executor.execute(
            StepDefinition(name="search", run=step), StepContext(subject=subject), force=True
        )
    )

    assert isinstance(result, CompletedStep)
    assert result.data == {"cached": False}
    assert step.calls == 1


def test_transient_failures_are_retried_with_backoff(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    sleep = RecordingSleep()
    step = FlakyStep(
        [TransientUpstreamError("busy", status_code=503), TimeoutError()],
        StepOutput(data="done"),
    )
    executor = _executor(memory_store, breakers, max_retries=3, sleep=sleep)

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, CompletedStep)
    assert step.calls == 3
    assert sleep.delays == [1.0, 2.0]
    record = memory_store.get_checkpoint(subject.subject_id, "search")
    assert record is not None
    assert record.attempts == 3


def test_permanent_failure_is_not_retried(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    sleep = RecordingSleep()
    step = FlakyStep([ValueError("bad schema")], StepOutput(data=None))
    executor = _executor(memory_store, breakers, max_retries=3, sleep=sleep)

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, FailedStep)
    assert result.error == "bad schema"
    assert result.attempts == 1
    assert sleep.delays == []
    record = memory_store.get_checkpoint(subject.subject_id, "search")
    assert record is not None
    assert record.status is StepStatus.FAILED
    assert record.error_message == "bad schema"


def test_retries_stop_after_max_retries(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    step = FlakyStep(
        [TransientUpstreamError("busy", status_code=503) for _ in range(5)],
        StepOutput(data="never"),
    )
    executor = _executor(memory_store, breakers, max_retries=2)

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, FailedStep)
    assert result.attempts == 3
    assert step.calls == 3


def test_slow_step_times_out_and_counts_as_breaker_failure(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    async def hang(context: StepContext) -> StepOutput:
        del context
        await asyncio.sleep(10)
        return StepOutput(data=None)

    executor = _executor(memory_store, breakers)
    step = StepDefinition(name="search", run=hang, timeout_seconds=0.01, breaker="web_search")

    result = asyncio.run(executor.execute(step, StepContext(subject=subject)))

    assert isinstance(result, FailedStep)
    assert "timed out" in result.error
    assert breakers.get_or_create("web_search").stats().total_failures == 1


def test_open_breaker_skips_step_without_calling(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    breakers.get_or_create("web_search").force_open()
    step = FlakyStep([], StepOutput(data="unused"))
    executor = _executor(memory_store, breakers)

    result = asyncio.run(
        executor.execute(
            StepDefinition(name="search", run=step, breaker="web_search"),
            StepContext(subject=subject),
        )
    )

    assert isinstance(result, SkippedStep)
    assert result.reason == SkipReason.CIRCUIT_BREAKER_OPEN
    assert step.calls == 0
    record = memory_store.get_checkpoint(subject.subject_id, "search")
    assert record is not None
    assert record.skip_reason == "circuit_breaker_open"


def test_repeated_failures_open_the_breaker(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    step = FlakyStep([RuntimeError("boom") for _ in range(10)], StepOutput(data=None))
    executor = _executor(memory_store, breakers)
    definition = StepDefinition(name="search", run=step, breaker="secondary_research")

    for _ in range(5):
        asyncio.run(executor.execute(definition, StepContext(subject=subject)))
    result = asyncio.run(executor.execute(definition, StepContext(subject=subject)))

    assert isinstance(result, SkippedStep)
    assert result.reason == SkipReason.CIRCUIT_BREAKER_OPEN
    assert step.calls == 5


@pytest.mark.parametrize(
    ("definition_kwargs", "run_optional", "reason"),
    [
        ({"skip_reason": SkipReason.MISSING_CREDENTIALS}, True, "missing_credentials"),
        ({"skippable": True}, False, "optional_steps_disabled"),
        ({"skip_when": lambda context: True}, True, "skip_condition_met"),
    ],
)
def test_skip_rules_are_applied_before_running(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
    definition_kwargs: dict[str, object],
    run_optional: bool,  # noqa: FBT001
    reason: str,
) -> None:
    step = FlakyStep([], StepOutput(data="unused"))
    executor = _executor(memory_store, breakers)
    definition = StepDefinition(
        name="search",
        run=step,
        **definition_kwargs,  # pyright: ignore[reportArgumentType]
    )

    result = asyncio.run(
        executor.execute(definition, StepContext(subject=subject), run_optional=run_optional)
    )

    assert isinstance(result, SkippedStep)
    assert result.reason == reason
    assert step.calls == 0


def test_step_can_skip_itself(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    async def nothing_to_do(context: StepContext) -> StepOutput:
        del context
        raise StepSkipped("no_results")

    executor = _executor(memory_store, breakers)
    definition = StepDefinition(name="search", run=nothing_to_do, breaker="web_search")

    result = asyncio.run(executor.execute(definition, StepContext(subject=subject)))

    assert isinstance(result, SkippedStep)
    assert result.reason == "no_results"
    assert breakers.get_or_create("web_search").stats().total_successes == 1


def test_observers_receive_progress_events(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    queue: asyncio.Queue[PipelineEvent] = asyncio.Queue()
    executor = _executor(memory_store, breakers, observers=(QueueObserver(queue),))
    step = FlakyStep([], StepOutput(data="done", tokens_used=5))

    asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    events: list[PipelineEvent] = []
    while not queue.empty():
        events.append(queue.get_nowait())
    assert isinstance(events[0], StepStarted)
    assert isinstance(events[1], StepCompleted)
    assert events[1].tokens_used == 5


def test_full_queue_drops_events_instead_of_blocking(
    memory_store: InMemoryCheckpointStore,
    breakers: CircuitBreakerRegistry,
    subject: SubjectContext,
) -> None:
    observer = QueueObserver(asyncio.Queue(maxsize=1))
    executor = _executor(memory_store, breakers, observers=(observer,))
    step = FlakyStep([], StepOutput(data="done"))

    result = asyncio.run(
        executor.execute(StepDefinition(name="search", run=step), StepContext(subject=subject))
    )

    assert isinstance(result, CompletedStep)
    assert observer.dropped == 1
