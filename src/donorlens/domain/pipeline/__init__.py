"""Checkpointed, dependency-ordered step execution."""

from __future__ import annotations

from .events import (
    LoggingObserver,
    PipelineEvent,
    PipelineObserver,
    QueueObserver,
    StepCompleted,
    StepFailed,
    StepStarted,
    StepWasSkipped,
    SubjectFinished,
)
from .executor import StepExecutor
from .pipeline import PipelineRun, StepPipeline
from .steps import (
    CompletedStep,
    FailedStep,
    PipelineDefinitionError,
    SkippedStep,
    SkipReason,
    StepContext,
    StepDefinition,
    StepOutput,
    StepResult,
    StepSkipped,
)

__all__ = [
    "CompletedStep",
    "FailedStep",
    "LoggingObserver",
    "PipelineDefinitionError",
    "PipelineEvent",
    "PipelineObserver",
    "PipelineRun",
    "QueueObserver",
    "SkipReason",
    "SkippedStep",
    "StepCompleted",
    "StepContext",
    "StepDefinition",
    "StepExecutor",
    "StepFailed",
    "StepOutput",
    "StepPipeline",
    "StepResult",
    "StepSkipped",
    "StepStarted",
    "StepWasSkipped",
    "SubjectFinished",
]
