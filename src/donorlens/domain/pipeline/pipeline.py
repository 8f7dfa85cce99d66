"""Dependency-ordered execution of a fixed set of steps for one subject."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from donorlens.domain.checkpoints import StepStatus

from .events import SubjectFinished, emit
from .steps import (
    CompletedStep,
    FailedStep,
    PipelineDefinitionError,
    SkippedStep,
    SkipReason,
    StepContext,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.subject import SubjectContext

    from .executor import StepExecutor
    from .steps import StepDefinition, StepResult

log = getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class PipelineRun:
    subject_id: str
    results: Mapping[str, StepResult]
    required_steps: tuple[str, ...]
    duration_ms: int = 0

    @property
    def completed_steps(self) -> list[str]:
        return [name for name, result in self.results.items() if isinstance(result, CompletedStep)]

    @property
    def failed_steps(self) -> list[str]:
        return [name for name, result in self.results.items() if isinstance(result, FailedStep)]

    @property
    def skipped_steps(self) -> list[str]:
        return [name for name, result in self.results.items() if isinstance(result, SkippedStep)]

    @property
    def success(self) -> bool:
        return all(
            isinstance(self.results.get(name), CompletedStep) for name in self.required_steps
        )

    @property
    def tokens_used(self) -> int:
        return sum(result.tokens_used for result in self.results.values())

    def output(self, step_name: str) -> JSONValue | None:
        result = self.results.get(step_name)
        return result.data if isinstance(result, CompletedStep) else None


def _topological_order(steps: Iterable[StepDefinition]) -> list[str]:
    by_name: dict[str, StepDefinition] = {}
    for step in steps:
        if step.name in by_name:
            raise PipelineDefinitionError(f"Duplicate step name: {step.name}")
        by_name[step.name] = step

    indegree = dict.fromkeys(by_name, 0)
    dependants: dict[str, list[str]] = {name: [] for name in by_name}
    for step in by_name.values():
        for predecessor in step.predecessors:
            if predecessor not in by_name:
                raise PipelineDefinitionError(
                    f"Step {step.name} depends on unknown step {predecessor}"
                )
            indegree[step.name] += 1
            dependants[predecessor].append(step.name)

    ready = deque(name for name, degree in indegree.items() if degree == 0)
    order: list[str] = []
    while ready:
        name = ready.popleft()
        order.append(name)
        for dependant in dependants[name]:
            indegree[dependant] -= 1
            if indegree[dependant] == 0:
                ready.append(dependant)

    if len(order) != len(by_name):
        cyclic = sorted(name for name, degree in indegree.items() if degree > 0)
        raise PipelineDefinitionError(f"Dependency cycle between steps: {', '.join(cyclic)}")
    return order


class StepPipeline:
    """Runs steps in waves: every step whose predecessors are terminal runs concurrently.

    A step whose ``depends_on`` predecessor did not complete is skipped with
    ``dependency_failed``; ``waits_for`` only orders execution. Completed steps found in
    the checkpoint store are reused, so re-running a subject resumes where it stopped.
    """

    def __init__(self, steps: Iterable[StepDefinition], executor: StepExecutor) -> None:
        step_list = list(steps)
        self._order = _topological_order(step_list)
        self._steps = {step.name: step for step in step_list}
        self.executor = executor

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(self._order)

    @property
    def required_steps(self) -> tuple[str, ...]:
        return tuple(name for name in self._order if self._steps[name].required)

    async def run(
        self,
        subject: SubjectContext,
        *,
        force: bool = False,
        run_optional: bool = True,
    ) -> PipelineRun:
        started = time.monotonic()
        results: dict[str, StepResult] = {}
        pending = list(self._order)

        while pending:
            ready = [
                name
                for name in pending
                if all(
                    predecessor in results for predecessor in self._steps[name].predecessors
                )
            ]
            # _topological_order guarantees progress
            pending = [name for name in pending if name not in ready]

            context = StepContext(subject=subject, results=MappingProxyType(dict(results)))
            runnable: list[StepDefinition] = []
            for name in ready:
                step = self._steps[name]
                unmet = [
                    dependency
                    for dependency in step.depends_on
                    if results[dependency].status is not StepStatus.COMPLETED
                ]
                if unmet:
                    log.debug("[%s] %s blocked by %s", subject.subject_id, name, ", ".join(unmet))
                    results[name] = self.executor.skip(
                        subject.subject_id, name, SkipReason.DEPENDENCY_FAILED
                    )
                else:
                    runnable.append(step)

            outcomes = await asyncio.gather(
                *(
                    self.executor.execute(step, context, force=force, run_optional=run_optional)
                    for step in runnable
                )
            )
            for step, outcome in zip(runnable, outcomes, strict=True):
                results[step.name] = outcome

        run = PipelineRun(
            subject_id=subject.subject_id,
            results=MappingProxyType({name: results[name] for name in self._order}),
            required_steps=self.required_steps,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        emit(
            self.executor.observers,
            SubjectFinished(
                subject_id=subject.subject_id, success=run.success, duration_ms=run.duration_ms
            ),
        )
        return run
