from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from donorlens import app as app_module
from donorlens.adapters.sqlalchemy.checkpoint_store import SqlAlchemyCheckpointStore
from donorlens.adapters.sqlalchemy.mappings import step_checkpoint_table
from donorlens.adapters.sqlalchemy.unit_of_work import configured_engine
from donorlens.domain.checkpoints import StepMeta, StepStatus
from tests.support.fakes import FakeNow

PAYLOAD = {
    "source_ref": "perplexity",
    "records": [{"data": {"wealth": {"real_estate": {"total_value": 1_250_000.5}}}}],
    "sources": [],
}


def test_checkpoint_survives_a_new_store_instance(
    sqlite_checkpoint_store: SqlAlchemyCheckpointStore,
) -> None:
    sqlite_checkpoint_store.mark_processing("s1", "research_primary")
    sqlite_checkpoint_store.save_result(
        "s1", "research_primary", PAYLOAD, StepMeta(tokens_used=250, duration_ms=1200)
    )

    reopened = SqlAlchemyCheckpointStore()
    record = reopened.get_checkpoint("s1", "research_primary")

    assert reopened.has_completed("s1", "research_primary")
    assert reopened.get_result("s1", "research_primary") == PAYLOAD
    assert record is not None
    assert record.attempts == 1
    assert record.tokens_used == 250
    assert record.created_at.tzinfo is not None


def test_upsert_keeps_one_row_per_step(
    sqlite_checkpoint_store: SqlAlchemyCheckpointStore,
) -> None:
    for _ in range(3):
        sqlite_checkpoint_store.mark_processing("s1", "web_search")
    sqlite_checkpoint_store.mark_failed("s1", "web_search", "HTTP 503")
    sqlite_checkpoint_store.save_result("s1", "web_search", {"ok": True}, StepMeta())

    engine = configured_engine()
    assert engine is not None
    with engine.connect() as connection:
        rows = connection.execute(
            select(func.count()).select_from(step_checkpoint_table)
        ).scalar_one()

    record = sqlite_checkpoint_store.get_checkpoint("s1", "web_search")
    assert rows == 1
    assert record is not None
    assert record.status is StepStatus.COMPLETED
    assert record.attempts == 3
    assert record.error_message is None


def test_summary_queries(sqlite_checkpoint_store: SqlAlchemyCheckpointStore) -> None:
    now = FakeNow()
    store = SqlAlchemyCheckpointStore(now=now)
    store.save_result("s1", "research_primary", {}, StepMeta(tokens_used=100))
    now.advance(timedelta(seconds=1))
    store.save_result("s1", "triangulation", {}, StepMeta(tokens_used=20))
    now.advance(timedelta(seconds=1))
    store.mark_skipped("s1", "news_search", "missing_credentials")

    status = store.get_completion_status("s1")
    skipped = store.get_checkpoint("s1", "news_search")

    assert (status.total, status.completed, status.skipped) == (3, 2, 1)
    assert store.total_tokens_used("s1") == 120
    assert store.total_tokens_used("nobody") == 0
    assert store.last_completed_step("s1") == "triangulation"
    assert skipped is not None
    assert skipped.skip_reason == "missing_credentials"
    assert [r.step_name for r in sqlite_checkpoint_store.get_all_checkpoints("s1")] == [
        "research_primary",
        "triangulation",
        "news_search",
    ]


def test_stale_processing_checkpoints(
    sqlite_checkpoint_store: SqlAlchemyCheckpointStore,
) -> None:
    now = FakeNow()
    store = SqlAlchemyCheckpointStore(now=now)
    store.mark_processing("s1", "research_primary")
    store.mark_processing("s2", "research_primary")
    store.mark_failed("s2", "research_primary", "boom")
    now.advance(timedelta(hours=1))
    store.mark_processing("s3", "research_primary")

    stale = store.stale_checkpoints(timedelta(minutes=30))

    assert [record.subject_id for record in stale] == ["s1"]


def test_clear_checkpoints(sqlite_checkpoint_store: SqlAlchemyCheckpointStore) -> None:
    sqlite_checkpoint_store.save_result("s1", "research_primary", {}, StepMeta())
    sqlite_checkpoint_store.mark_skipped("s1", "web_search", "no_results")
    sqlite_checkpoint_store.save_result("s2", "research_primary", {}, StepMeta())

    removed = sqlite_checkpoint_store.clear_checkpoints("s1")

    assert removed == 2
    assert sqlite_checkpoint_store.get_all_checkpoints("s1") == []
    assert sqlite_checkpoint_store.has_completed("s2", "research_primary")


def test_reset_subject_logs_the_clear_once(
    sqlite_checkpoint_store: SqlAlchemyCheckpointStore, caplog: pytest.LogCaptureFixture
) -> None:
    sqlite_checkpoint_store.save_result("s1", "research_primary", {}, StepMeta())

    with caplog.at_level(logging.INFO):
        removed = app_module.reset_subject("s1", store=sqlite_checkpoint_store)

    assert removed == 1
    cleared = [record for record in caplog.records if "Cleared" in record.getMessage()]
    assert len(cleared) == 1
