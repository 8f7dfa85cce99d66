"""Step definitions and the tagged results a step execution produces."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Literal

from donorlens.domain.checkpoints import JSONValue, StepStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from donorlens.domain.subject import SubjectContext


class SkipReason(StrEnum):
    DEPENDENCY_FAILED = "dependency_failed"
    CIRCUIT_BREAKER_OPEN = "circuit_breaker_open"
    SKIP_CONDITION_MET = "skip_condition_met"
    MISSING_CREDENTIALS = "missing_credentials"
    OPTIONAL_STEPS_DISABLED = "optional_steps_disabled"


class PipelineDefinitionError(ValueError):
    """Raised when step definitions do not form a valid dependency graph."""


class StepSkipped(Exception):  # noqa: N818
    """Raised by a step function that decides at runtime it has nothing to do."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(slots=True, frozen=True, kw_only=True)
class StepOutput:
    data: JSONValue
    tokens_used: int = 0
    sources_found: int | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class CompletedStep:
    step_name: str
    data: JSONValue
    tokens_used: int = 0
    duration_ms: int = 0
    sources_found: int | None = None
    from_checkpoint: bool = False
    status: Literal[StepStatus.COMPLETED] = StepStatus.COMPLETED


@dataclass(slots=True, frozen=True, kw_only=True)
class FailedStep:
    step_name: str
    error: str
    attempts: int = 1
    duration_ms: int = 0
    tokens_used: int = 0
    status: Literal[StepStatus.FAILED] = StepStatus.FAILED


@dataclass(slots=True, frozen=True, kw_only=True)
class SkippedStep:
    step_name: str
    reason: str
    duration_ms: int = 0
    tokens_used: int = 0
    status: Literal[StepStatus.SKIPPED] = StepStatus.SKIPPED


type StepResult = CompletedStep | FailedStep | SkippedStep


@dataclass(slots=True, frozen=True, kw_only=True)
class StepContext:
    """What a step sees: the subject and the terminal results of earlier steps."""

    subject: SubjectContext
    results: Mapping[str, StepResult] = field(
        default_factory=lambda: MappingProxyType[str, StepResult]({})
    )

    def output_of(self, step_name: str) -> JSONValue | None:
        result = self.results.get(step_name)
        if isinstance(result, CompletedStep):
            return result.data
        return None

    def completed_outputs(self) -> dict[str, JSONValue]:
        return {
            name: result.data
            for name, result in self.results.items()
            if isinstance(result, CompletedStep)
        }


type StepFunction = Callable[[StepContext], Awaitable[StepOutput]]
type SkipPredicate = Callable[[StepContext], bool]


@dataclass(slots=True, frozen=True, kw_only=True)
class StepDefinition:
    """Static description of one pipeline step.

    ``depends_on`` steps must complete for this step to run; ``waits_for`` steps
    only have to reach a terminal status. ``skip_reason`` marks the step skipped
    before anything is attempted (configuration problems such as missing
    credentials), while ``skip_when`` is evaluated against the live context.
    """

    name: str
    run: StepFunction
    depends_on: tuple[str, ...] = ()
    waits_for: tuple[str, ...] = ()
    required: bool = False
    skippable: bool = False
    timeout_seconds: float | None = None
    breaker: str | None = None
    skip_reason: str | None = None
    skip_when: SkipPredicate | None = None

    @property
    def predecessors(self) -> tuple[str, ...]:
        return (*self.depends_on, *(name for name in self.waits_for if name not in self.depends_on))
