"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from donorlens.adapters.memory import InMemoryCheckpointStore
from donorlens.adapters.remote import HttpSourceAdapter, HttpVerifier
from donorlens.adapters.sqlalchemy.checkpoint_store import SqlAlchemyCheckpointStore
from donorlens.adapters.sqlalchemy.unit_of_work import is_started, startup
from donorlens.config import (
    RESEARCH_SOURCES,
    VERIFIER_SERVICES,
    MissingConfigurationError,
    get_backoff_policy,
    get_breaker_presets,
    get_database_config,
    get_pipeline_settings,
    get_remote_service_config,
    get_storage_config,
)
from donorlens.domain.disambiguation import NameDisambiguator
from donorlens.domain.pipeline import LoggingObserver, SkipReason, StepExecutor
from donorlens.domain.research import ResearchPipeline, ResearchSource, sufficient_results
from donorlens.domain.resilience import CircuitBreakerRegistry
from donorlens.domain.sources import SourceAuthorityRegistry
from donorlens.domain.triangulation import TriangulationEngine
from donorlens.domain.verification import ClaimType, ClaimVerifier

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from donorlens.config import PipelineSettings, ResearchSourceSpec, StorageConfig
    from donorlens.domain.checkpoints import CheckpointRecord, JSONValue
    from donorlens.domain.pipeline import PipelineObserver
    from donorlens.domain.ports import AuthoritativeVerifier, CheckpointStore, SourceAdapter
    from donorlens.domain.research import PipelineResult
    from donorlens.domain.subject import SubjectContext

log = getLogger(__name__)


def build_checkpoint_store(storage: StorageConfig | None = None) -> CheckpointStore:
    """Checkpoint store for the configured backend; starts the SQLAlchemy adapter if needed."""

    storage_config = storage or get_storage_config()
    if storage_config.checkpoint_backend == "memory":
        return InMemoryCheckpointStore()
    if not is_started():
        startup(database_uri=get_database_config(storage=storage_config).uri)
    return SqlAlchemyCheckpointStore()


def build_breaker_registry() -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(get_breaker_presets())


def _research_source(
    spec: ResearchSourceSpec, adapters: Mapping[str, SourceAdapter] | None
) -> ResearchSource:
    adapter: SourceAdapter | None
    skip_reason: str | None = None
    if adapters is not None:
        adapter = adapters.get(spec.service)
    else:
        try:
            adapter = HttpSourceAdapter(get_remote_service_config(spec.service))
        except MissingConfigurationError:
            if spec.required:
                raise
            log.info("No credentials for %s; %s will be skipped", spec.service, spec.step_name)
            adapter = None
    if adapter is None:
        if spec.required:
            raise MissingConfigurationError(f"No research source configured for {spec.service}")
        skip_reason = SkipReason.MISSING_CREDENTIALS

    skip_when = None
    if spec.skip_above_quality is not None and spec.followup_of is not None:
        skip_when = sufficient_results(spec.followup_of, min_quality=spec.skip_above_quality)

    return ResearchSource(
        step_name=spec.step_name,
        adapter=adapter,
        breaker=spec.breaker,
        required=spec.required,
        skippable=spec.skippable,
        timeout_seconds=spec.timeout_seconds,
        depends_on=spec.depends_on,
        followup_of=spec.followup_of,
        skip_reason=skip_reason,
        skip_when=skip_when,
    )


def build_verifiers() -> list[AuthoritativeVerifier]:
    """HTTP verifiers for every verification service with credentials configured."""

    verifiers: list[AuthoritativeVerifier] = []
    for service, claim_types in VERIFIER_SERVICES.items():
        try:
            config = get_remote_service_config(service)
        except MissingConfigurationError:
            log.info("No credentials for %s; its claims will be unverifiable", service)
            continue
        verifiers.append(
            HttpVerifier(
                config=config,
                claim_types=frozenset(ClaimType(value) for value in claim_types),
            )
        )
    return verifiers


def build_research_pipeline(
    *,
    store: CheckpointStore | None = None,
    breakers: CircuitBreakerRegistry | None = None,
    adapters: Mapping[str, SourceAdapter] | None = None,
    verifiers: Iterable[AuthoritativeVerifier] | None = None,
    source_specs: Sequence[ResearchSourceSpec] = RESEARCH_SOURCES,
    settings: PipelineSettings | None = None,
    registry: SourceAuthorityRegistry | None = None,
    observers: Sequence[PipelineObserver] | None = None,
) -> ResearchPipeline:
    """Wire the research pipeline from configuration.

    ``adapters`` maps service names to source adapters and replaces the HTTP adapters
    built from the environment; services missing from it are treated as unconfigured.
    """

    effective_settings = settings or get_pipeline_settings()
    effective_breakers = breakers or build_breaker_registry()
    effective_registry = registry or SourceAuthorityRegistry()
    executor = StepExecutor(
        store=store or build_checkpoint_store(),
        breakers=effective_breakers,
        backoff=get_backoff_policy(),
        default_timeout_seconds=effective_settings.default_timeout_seconds,
        observers=tuple(observers) if observers is not None else (LoggingObserver(),),
    )
    verifier = ClaimVerifier(
        verifiers if verifiers is not None else build_verifiers(),
        effective_breakers,
        disambiguator=NameDisambiguator(),
    )
    return ResearchPipeline(
        [_research_source(spec, adapters) for spec in source_specs],
        executor=executor,
        engine=TriangulationEngine(effective_registry),
        verifier=verifier,
        defaults=effective_settings.research_options(),
    )


def research_prospect(
    subject: SubjectContext,
    *,
    pipeline: ResearchPipeline | None = None,
    settings: PipelineSettings | None = None,
    force: bool = False,
) -> PipelineResult:
    """Research one subject, resuming from any checkpoints left by an earlier run."""

    effective_settings = settings or get_pipeline_settings()
    effective_pipeline = pipeline or build_research_pipeline(settings=effective_settings)
    return asyncio.run(
        effective_pipeline.execute_for_item(
            subject, effective_settings.research_options(force=force)
        )
    )


def research_prospects(
    subjects: Iterable[SubjectContext],
    *,
    pipeline: ResearchPipeline | None = None,
    settings: PipelineSettings | None = None,
    force: bool = False,
) -> list[PipelineResult]:
    effective_settings = settings or get_pipeline_settings()
    effective_pipeline = pipeline or build_research_pipeline(settings=effective_settings)
    subject_list = list(subjects)
    log.info(
        "Starting batch research: subjects=%d, max_concurrent=%d",
        len(subject_list),
        effective_settings.max_concurrent_subjects,
    )
    results = asyncio.run(
        effective_pipeline.research_many(
            subject_list,
            effective_settings.research_options(force=force),
            max_concurrent=effective_settings.max_concurrent_subjects,
        )
    )
    log.info(
        "Finished batch research: succeeded=%d, failed=%d",
        sum(1 for result in results if result.success),
        sum(1 for result in results if not result.success),
    )
    return results


def checkpoint_summary(
    subject_id: str, *, store: CheckpointStore | None = None
) -> dict[str, JSONValue]:
    effective_store = store or build_checkpoint_store()
    status = effective_store.get_completion_status(subject_id)
    return {
        "subject_id": subject_id,
        "total": status.total,
        "completed": status.completed,
        "failed": status.failed,
        "skipped": status.skipped,
        "pending": status.pending,
        "processing": status.processing,
        "finished": status.is_finished,
        "tokens_used": effective_store.total_tokens_used(subject_id),
        "last_completed_step": effective_store.last_completed_step(subject_id),
        "steps": [
            {
                "step": record.step_name,
                "status": str(record.status),
                "attempts": record.attempts,
                "error": record.error_message,
                "skip_reason": record.skip_reason,
                "updated_at": record.updated_at.isoformat(),
            }
            for record in effective_store.get_all_checkpoints(subject_id)
        ],
    }


def reset_subject(subject_id: str, *, store: CheckpointStore | None = None) -> int:
    """Delete every checkpoint of ``subject_id`` so the next run starts from scratch."""

    removed = (store or build_checkpoint_store()).clear_checkpoints(subject_id)
    log.info("Cleared %d checkpoint(s) for %s", removed, subject_id)
    return removed


def stale_checkpoints(
    *,
    older_than: timedelta | None = None,
    store: CheckpointStore | None = None,
) -> list[CheckpointRecord]:
    """Checkpoints stuck in ``processing`` longer than ``older_than`` (crashed runs)."""

    threshold = older_than or timedelta(seconds=get_storage_config().stale_after_seconds)
    return (store or build_checkpoint_store()).stale_checkpoints(threshold)
