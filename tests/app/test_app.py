from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from donorlens import app as app_module
from donorlens.adapters.memory import InMemoryCheckpointStore
from donorlens.adapters.remote import HttpVerifier
from donorlens.config import MissingConfigurationError, PipelineSettings, StorageConfig
from donorlens.config.pipeline import (
    FOLLOWUP_STEP,
    NEWS_SEARCH_STEP,
    PRIMARY_STEP,
    WEB_SEARCH_STEP,
)
from donorlens.domain.checkpoints import StepMeta
from donorlens.domain.pipeline import SkipReason
from donorlens.domain.research import TRIANGULATION_STEP, VERIFICATION_STEP
from donorlens.domain.resilience import CircuitBreakerRegistry
from donorlens.domain.subject import SubjectContext
from donorlens.domain.verification import ClaimType
from tests.support.fakes import FakeNow, FakeSource

PRIMARY_DATA = {"background": {"age": 61}, "executive_summary": "Founder of Acme Corp."}


def test_pipeline_skips_unconfigured_optional_sources(
    memory_store: InMemoryCheckpointStore,
) -> None:
    primary = FakeSource("perplexity", PRIMARY_DATA)

    pipeline = app_module.build_research_pipeline(
        store=memory_store,
        breakers=CircuitBreakerRegistry(),
        adapters={"perplexity": primary},
        verifiers=[],
        settings=PipelineSettings(),
    )

    by_step = {source.step_name: source for source in pipeline.sources}
    assert list(by_step) == [PRIMARY_STEP, FOLLOWUP_STEP, WEB_SEARCH_STEP, NEWS_SEARCH_STEP]
    assert by_step[PRIMARY_STEP].adapter is primary
    assert by_step[FOLLOWUP_STEP].adapter is primary
    assert by_step[FOLLOWUP_STEP].skip_when is not None
    assert by_step[WEB_SEARCH_STEP].adapter is None
    assert by_step[WEB_SEARCH_STEP].skip_reason == SkipReason.MISSING_CREDENTIALS
    assert by_step[NEWS_SEARCH_STEP].skip_reason == SkipReason.MISSING_CREDENTIALS


def test_pipeline_requires_the_primary_source(memory_store: InMemoryCheckpointStore) -> None:
    with pytest.raises(MissingConfigurationError, match="perplexity"):
        app_module.build_research_pipeline(
            store=memory_store,
            breakers=CircuitBreakerRegistry(),
            adapters={"linkup": FakeSource("linkup", PRIMARY_DATA)},
            verifiers=[],
            settings=PipelineSettings(),
        )


def test_research_prospect_runs_the_injected_pipeline(
    memory_store: InMemoryCheckpointStore, subject: SubjectContext
) -> None:
    primary = FakeSource("perplexity", PRIMARY_DATA, tokens_used=40)
    settings = PipelineSettings(skip_verification=True)
    pipeline = app_module.build_research_pipeline(
        store=memory_store,
        breakers=CircuitBreakerRegistry(),
        adapters={"perplexity": primary},
        verifiers=[],
        settings=settings,
    )

    result = app_module.research_prospect(subject, pipeline=pipeline, settings=settings)

    assert result.success
    assert PRIMARY_STEP in result.completed_steps
    assert TRIANGULATION_STEP in result.completed_steps
    assert WEB_SEARCH_STEP in result.skipped_steps
    assert NEWS_SEARCH_STEP in result.skipped_steps
    assert primary.calls[0] == subject.subject_id
    skipped = memory_store.get_checkpoint(subject.subject_id, WEB_SEARCH_STEP)
    assert skipped is not None
    assert skipped.skip_reason == SkipReason.MISSING_CREDENTIALS


def test_research_prospects_returns_one_result_per_subject(
    memory_store: InMemoryCheckpointStore,
) -> None:
    settings = PipelineSettings(skip_verification=True, run_optional_steps=False)
    pipeline = app_module.build_research_pipeline(
        store=memory_store,
        breakers=CircuitBreakerRegistry(),
        adapters={"perplexity": FakeSource("perplexity", PRIMARY_DATA)},
        verifiers=[],
        settings=settings,
    )
    subjects = [
        SubjectContext(subject_id="a", name="Jane Doe"),
        SubjectContext(subject_id="b", name="John Roe"),
    ]

    results = app_module.research_prospects(subjects, pipeline=pipeline, settings=settings)

    assert [result.subject_id for result in results] == ["a", "b"]
    assert all(result.success for result in results)


def test_checkpoint_commands(memory_store: InMemoryCheckpointStore) -> None:
    memory_store.save_result("s1", PRIMARY_STEP, {"ok": True}, StepMeta(tokens_used=300))
    memory_store.mark_skipped("s1", WEB_SEARCH_STEP, SkipReason.MISSING_CREDENTIALS)
    memory_store.mark_failed("s1", NEWS_SEARCH_STEP, "timeout")

    summary = app_module.checkpoint_summary("s1", store=memory_store)

    assert summary["total"] == 3
    assert summary["completed"] == 1
    assert summary["skipped"] == 1
    assert summary["failed"] == 1
    assert summary["tokens_used"] == 300
    assert summary["last_completed_step"] == PRIMARY_STEP
    steps = summary["steps"]
    assert isinstance(steps, list)
    assert len(steps) == 3

    assert app_module.reset_subject("s1", store=memory_store) == 3
    assert memory_store.get_all_checkpoints("s1") == []


def test_stale_checkpoints_uses_the_given_age() -> None:
    now = FakeNow()
    store = InMemoryCheckpointStore(now=now)
    store.mark_processing("s1", PRIMARY_STEP)
    now.advance(timedelta(minutes=10))

    stale = app_module.stale_checkpoints(older_than=timedelta(minutes=5), store=store)

    assert [record.step_name for record in stale] == [PRIMARY_STEP]
    assert app_module.stale_checkpoints(older_than=timedelta(minutes=30), store=store) == []


def test_memory_backend_builds_an_in_memory_store(tmp_path: Path) -> None:
    storage = StorageConfig(data_dir=tmp_path, checkpoint_backend="memory")

    assert isinstance(app_module.build_checkpoint_store(storage), InMemoryCheckpointStore)


def test_build_verifiers_only_for_configured_services(monkeypatch: pytest.MonkeyPatch) -> None:
    for service in ("SEC_EDGAR", "PROPUBLICA"):
        monkeypatch.delenv(f"DONORLENS_{service}_URL", raising=False)
        monkeypatch.delenv(f"DONORLENS_{service}_API_KEY", raising=False)
    monkeypatch.setenv("DONORLENS_FEC_URL", "https://fec.test")
    monkeypatch.setenv("DONORLENS_FEC_API_KEY", "key")

    verifiers = app_module.build_verifiers()

    assert len(verifiers) == 1
    verifier = verifiers[0]
    assert isinstance(verifier, HttpVerifier)
    assert verifier.name == "fec"
    assert verifier.claim_types == frozenset({ClaimType.POLITICAL_GIVING})


def test_followup_pass_asks_for_missing_sections_without_corroborating_itself(
    memory_store: InMemoryCheckpointStore, subject: SubjectContext
) -> None:
    primary = FakeSource("perplexity", {"background": {"age": 61}})
    settings = PipelineSettings(skip_verification=True)
    pipeline = app_module.build_research_pipeline(
        store=memory_store,
        breakers=CircuitBreakerRegistry(),
        adapters={"perplexity": primary},
        verifiers=[],
        settings=settings,
    )

    result = app_module.research_prospect(subject, pipeline=pipeline, settings=settings)

    assert FOLLOWUP_STEP in result.completed_steps
    first, second = primary.subjects
    assert first.extras == {}
    assert second.extras == {
        "research_pass": "followup",
        "missing_sections": "wealth,philanthropy,metrics",
    }
    assert result.triangulation is not None
    fields = result.triangulation["fields"]
    assert isinstance(fields, dict)
    age = fields["background.age"]
    assert isinstance(age, dict)
    assert age["level"] == "SINGLE_SOURCE"
    assert age["score"] == pytest.approx(0.35)


def test_pipeline_runs_without_options_use_the_settings(
    memory_store: InMemoryCheckpointStore, subject: SubjectContext
) -> None:
    pipeline = app_module.build_research_pipeline(
        store=memory_store,
        breakers=CircuitBreakerRegistry(),
        adapters={"perplexity": FakeSource("perplexity", PRIMARY_DATA)},
        verifiers=[],
        settings=PipelineSettings(skip_verification=True, run_optional_steps=False),
    )

    result = asyncio.run(pipeline.execute_for_item(subject))

    assert result.success
    assert VERIFICATION_STEP not in result.completed_steps
    assert result.verification_report is None
    assert FOLLOWUP_STEP in result.skipped_steps
