"""Prospect research: source searches, triangulation and verification for one subject."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Final

from donorlens.domain.pipeline import (
    FailedStep,
    SkipReason,
    StepContext,
    StepDefinition,
    StepOutput,
    StepPipeline,
    StepSkipped,
)
from donorlens.domain.ports.sources import SourceRecord
from donorlens.domain.quality import data_quality_score
from donorlens.domain.sources import SourceLink
from donorlens.domain.triangulation import NoSourceDataError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.pipeline import PipelineRun, StepExecutor
    from donorlens.domain.pipeline.steps import SkipPredicate, StepFunction
    from donorlens.domain.ports.sources import SourceAdapter
    from donorlens.domain.subject import SubjectContext
    from donorlens.domain.triangulation import TriangulationEngine
    from donorlens.domain.verification import ClaimVerifier

log = getLogger(__name__)

TRIANGULATION_STEP: Final = "triangulation"
VERIFICATION_STEP: Final = "verification"
NO_RESULTS: Final = "no_results"
FOLLOWUP_SECTIONS: Final = ("wealth", "philanthropy", "background", "metrics")
VERIFIED_CONFIDENCE: Final = 0.7


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    NEEDS_REVIEW = "needs_review"
    UNVERIFIED = "unverified"


@dataclass(slots=True, frozen=True, kw_only=True)
class ResearchSource:
    """A search step backed by one ``SourceAdapter``.

    ``adapter`` is ``None`` when the service could not be configured; the step is then
    recorded as skipped with ``skip_reason`` instead of being attempted.
    A ``followup_of`` source searches again after that step, asking only for the
    sections its record left empty.
    """

    step_name: str
    adapter: SourceAdapter | None
    breaker: str | None = None
    required: bool = False
    skippable: bool = False
    timeout_seconds: float | None = None
    depends_on: tuple[str, ...] = ()
    followup_of: str | None = None
    skip_reason: str | None = None
    skip_when: SkipPredicate | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class ResearchOptions:
    run_optional_steps: bool = True
    skip_verification: bool = False
    verification_threshold: float = VERIFIED_CONFIDENCE
    force: bool = False


@dataclass(slots=True, frozen=True, kw_only=True)
class PipelineResult:
    subject_id: str
    success: bool
    merged_record: dict[str, JSONValue] | None = None
    completed_steps: tuple[str, ...] = ()
    failed_steps: tuple[str, ...] = ()
    skipped_steps: tuple[str, ...] = ()
    verification_report: dict[str, JSONValue] | None = None
    triangulation: dict[str, JSONValue] | None = None
    source_assessment: dict[str, JSONValue] | None = None
    tokens_used: int = 0
    verification_status: VerificationOutcome = VerificationOutcome.UNVERIFIED
    data_quality_score: int = 0
    hallucination_count: int = 0
    duration_ms: int = 0
    errors: Mapping[str, str] = field(default_factory=dict[str, str])

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "subject_id": self.subject_id,
            "success": self.success,
            "completed_steps": list(self.completed_steps),
            "failed_steps": list(self.failed_steps),
            "skipped_steps": list(self.skipped_steps),
            "errors": dict(self.errors),
            "tokens_used": self.tokens_used,
            "duration_ms": self.duration_ms,
            "verification_status": str(self.verification_status),
            "data_quality_score": self.data_quality_score,
            "hallucination_count": self.hallucination_count,
            "merged_record": self.merged_record,
            "triangulation": self.triangulation,
            "source_assessment": self.source_assessment,
            "verification_report": self.verification_report,
        }


def _mapping(value: JSONValue | None) -> dict[str, JSONValue] | None:
    return dict(value) if isinstance(value, Mapping) else None


def records_from_output(output: JSONValue | None) -> list[SourceRecord]:
    """Rebuild the ``SourceRecord`` list a search step stored as its checkpoint."""

    payload = _mapping(output)
    if payload is None:
        return []
    records: list[SourceRecord] = []
    raw_records = payload.get("records")
    if isinstance(raw_records, list):
        records.extend(
            SourceRecord.from_payload(entry) for entry in raw_records if isinstance(entry, Mapping)
        )
    links = payload.get("sources")
    if isinstance(links, list) and links:
        # findings-level citations travel as a record without data
        records.append(
            SourceRecord.from_payload(
                {"source_ref": str(payload.get("source_ref") or "unknown"), "links": links}
            )
        )
    return records


def _links(record: Mapping[str, JSONValue]) -> list[SourceLink]:
    entries = record.get("sources")
    if not isinstance(entries, list):
        return []
    links: list[SourceLink] = []
    for entry in entries:
        if isinstance(entry, Mapping) and isinstance(url := entry.get("url"), str):
            title = entry.get("title")
            links.append(SourceLink(url=url, title=title if isinstance(title, str) else None))
    return links


def verification_outcome(
    report: Mapping[str, JSONValue] | None, *, threshold: float = VERIFIED_CONFIDENCE
) -> VerificationOutcome:
    if report is None:
        return VerificationOutcome.UNVERIFIED
    hallucinations = report.get("hallucinations")
    if isinstance(hallucinations, list) and hallucinations:
        return VerificationOutcome.NEEDS_REVIEW
    confidence = report.get("overall_confidence")
    if isinstance(confidence, (int, float)) and confidence >= threshold:
        return VerificationOutcome.VERIFIED
    return VerificationOutcome.UNVERIFIED


def sufficient_results(step_name: str, *, min_quality: int) -> SkipPredicate:
    """Skip predicate: true once ``step_name`` produced a record scoring ``min_quality``."""

    def predicate(context: StepContext) -> bool:
        records = records_from_output(context.output_of(step_name))
        best = max((data_quality_score(record.data) for record in records), default=0)
        return best >= min_quality

    return predicate


def missing_sections(records: Sequence[SourceRecord]) -> list[str]:
    return [
        section
        for section in FOLLOWUP_SECTIONS
        if not any(_mapping(record.data.get(section)) for record in records)
    ]


def followup_subject(subject: SubjectContext, records: Sequence[SourceRecord]) -> SubjectContext:
    """``subject`` marked as a second pass that only asks for the missing sections."""

    extras = dict(subject.extras)
    extras["research_pass"] = "followup"
    extras["missing_sections"] = ",".join(missing_sections(records))
    return replace(subject, extras=extras)


def _search_step(source: ResearchSource) -> StepFunction:
    adapter = source.adapter

    async def run(context: StepContext) -> StepOutput:
        if adapter is None:
            raise StepSkipped(SkipReason.MISSING_CREDENTIALS)
        subject = context.subject
        if source.followup_of is not None:
            previous = records_from_output(context.output_of(source.followup_of))
            subject = followup_subject(subject, previous)
        findings = await adapter.search(subject)
        if not findings.records:
            if source.required:
                raise NoSourceDataError(f"{adapter.name} returned no results")
            raise StepSkipped(NO_RESULTS)
        log.debug(
            "[%s] %s returned %d record(s)",
            context.subject.subject_id,
            adapter.name,
            len(findings.records),
        )
        return StepOutput(
            data={
                "source_ref": adapter.name,
                "records": [record.to_payload() for record in findings.records],
                "sources": [
                    {"url": link.url, "title": link.title, "snippet": link.snippet}
                    for link in findings.sources
                ],
            },
            tokens_used=findings.tokens_used,
            sources_found=len(findings.sources),
        )

    return run


class ResearchPipeline:
    """Builds and runs the research step graph for a subject.

    Every search source runs as its own step. ``triangulation`` depends on the required
    sources and waits for the optional ones; ``verification`` depends on triangulation
    and is left out entirely when verification is disabled.

    ``defaults`` apply to runs started without explicit options.
    """

    def __init__(
        self,
        sources: Sequence[ResearchSource],
        *,
        executor: StepExecutor,
        engine: TriangulationEngine,
        verifier: ClaimVerifier | None = None,
        defaults: ResearchOptions | None = None,
    ) -> None:
        if not any(source.required for source in sources):
            raise ValueError("At least one research source must be required")
        self.sources = tuple(sources)
        self.executor = executor
        self.engine = engine
        self.verifier = verifier
        self.defaults = defaults or ResearchOptions()

    def steps(self, options: ResearchOptions) -> list[StepDefinition]:
        steps = [
            StepDefinition(
                name=source.step_name,
                run=_search_step(source),
                depends_on=source.depends_on,
                required=source.required,
                skippable=source.skippable,
                timeout_seconds=source.timeout_seconds,
                breaker=source.breaker,
                skip_reason=source.skip_reason,
                skip_when=source.skip_when,
            )
            for source in self.sources
        ]
        steps.append(
            StepDefinition(
                name=TRIANGULATION_STEP,
                run=self._triangulate,
                depends_on=tuple(s.step_name for s in self.sources if s.required),
                waits_for=tuple(s.step_name for s in self.sources if not s.required),
                required=True,
            )
        )
        if self.verifier is not None and not options.skip_verification:
            steps.append(
                StepDefinition(
                    name=VERIFICATION_STEP,
                    run=self._verify,
                    depends_on=(TRIANGULATION_STEP,),
                )
            )
        return steps

    async def execute_for_item(
        self, subject: SubjectContext, options: ResearchOptions | None = None
    ) -> PipelineResult:
        options = options or self.defaults
        pipeline = StepPipeline(self.steps(options), self.executor)
        log.info("Researching %s (%s)", subject.name, subject.subject_id)
        run = await pipeline.run(
            subject, force=options.force, run_optional=options.run_optional_steps
        )
        result = self._result(run, options)
        log.info(
            "[%s] finished: success=%s quality=%d status=%s",
            subject.subject_id,
            result.success,
            result.data_quality_score,
            result.verification_status,
        )
        return result

    async def research_many(
        self,
        subjects: Iterable[SubjectContext],
        options: ResearchOptions | None = None,
        *,
        max_concurrent: int = 2,
    ) -> list[PipelineResult]:
        """Research subjects concurrently, at most ``max_concurrent`` at a time."""

        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        semaphore = asyncio.Semaphore(max_concurrent)

        async def guarded(subject: SubjectContext) -> PipelineResult:
            async with semaphore:
                started = time.monotonic()
                try:
                    return await self.execute_for_item(subject, options)
                except Exception as exc:  # noqa: BLE001
                    log.exception("Research for %s aborted", subject.subject_id)
                    return PipelineResult(
                        subject_id=subject.subject_id,
                        success=False,
                        errors={"pipeline": str(exc)},
                        duration_ms=int((time.monotonic() - started) * 1000),
                    )

        return list(await asyncio.gather(*(guarded(subject) for subject in subjects)))

    async def _triangulate(self, context: StepContext) -> StepOutput:
        records: list[SourceRecord] = []
        for source in self.sources:
            records.extend(records_from_output(context.output_of(source.step_name)))
        result = self.engine.triangulate(records)
        sources = result.record.get("sources")
        return StepOutput(
            data=result.to_payload(),
            sources_found=len(sources) if isinstance(sources, list) else 0,
        )

    async def _verify(self, context: StepContext) -> StepOutput:
        if self.verifier is None:
            raise StepSkipped(SkipReason.SKIP_CONDITION_MET)
        triangulation = _mapping(context.output_of(TRIANGULATION_STEP)) or {}
        record = _mapping(triangulation.get("record"))
        if not record:
            raise StepSkipped(NO_RESULTS)
        report = await self.verifier.verify_record(record, context.subject.as_person())
        return StepOutput(data=report.to_payload())

    def _result(self, run: PipelineRun, options: ResearchOptions) -> PipelineResult:
        triangulation = _mapping(run.output(TRIANGULATION_STEP))
        report = _mapping(run.output(VERIFICATION_STEP))
        merged = _mapping(triangulation.get("record")) if triangulation else None
        hallucinations = report.get("hallucinations") if report else None
        source_assessment = None
        if merged is not None:
            api_verification = None if report is None else not hallucinations
            source_assessment = self.engine.registry.assess(
                _links(merged), api_verification=api_verification
            ).to_payload()
        errors = {
            name: result.error
            for name, result in run.results.items()
            if isinstance(result, FailedStep)
        }
        return PipelineResult(
            subject_id=run.subject_id,
            success=run.success,
            merged_record=merged,
            completed_steps=tuple(run.completed_steps),
            failed_steps=tuple(run.failed_steps),
            skipped_steps=tuple(run.skipped_steps),
            verification_report=report,
            triangulation=triangulation,
            source_assessment=source_assessment,
            tokens_used=run.tokens_used,
            verification_status=verification_outcome(
                report, threshold=options.verification_threshold
            ),
            data_quality_score=data_quality_score(merged) if merged else 0,
            hallucination_count=len(hallucinations) if isinstance(hallucinations, list) else 0,
            duration_ms=run.duration_ms,
            errors=errors,
        )
