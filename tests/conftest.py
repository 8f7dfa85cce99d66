from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from donorlens.adapters.memory import InMemoryCheckpointStore
from donorlens.adapters.sqlalchemy import start_mappers
from donorlens.adapters.sqlalchemy.checkpoint_store import SqlAlchemyCheckpointStore
from donorlens.adapters.sqlalchemy.migrations import upgrade_head
from donorlens.adapters.sqlalchemy.unit_of_work import shutdown, startup
from donorlens.domain.resilience import BackoffPolicy, CircuitBreakerRegistry
from donorlens.domain.subject import SubjectContext
from tests.support.fakes import FakeClock

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_checkpoint_store(sqlite_engine: Engine) -> Iterator[SqlAlchemyCheckpointStore]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield SqlAlchemyCheckpointStore()
    finally:
        shutdown()


@pytest.fixture
def memory_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breakers(clock: FakeClock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(clock=clock)


@pytest.fixture
def no_retry() -> BackoffPolicy:
    return BackoffPolicy(max_retries=0)


@pytest.fixture
def subject() -> SubjectContext:
    return SubjectContext(
        subject_id="subject-1",
        name="Jane Doe",
        city="Portland",
        state="OR",
        employer="Acme Corp",
        title="CEO",
    )
