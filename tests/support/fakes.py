"""Test doubles for sources, verifiers and time."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from donorlens.domain.ports.sources import SourceFindings, SourceRecord
from donorlens.domain.sources import SourceLink

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import timedelta

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.disambiguation import PersonContext
    from donorlens.domain.subject import SubjectContext
    from donorlens.domain.verification import ClaimType, VerifierResult


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNow:
    """Wall clock for checkpoint timestamps."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeSource:
    """Returns one record built from ``data``; queued errors are raised first, in order."""

    def __init__(
        self,
        name: str,
        data: Mapping[str, JSONValue] | None = None,
        *,
        errors: Sequence[Exception] = (),
        links: Sequence[str] = (),
        tokens_used: int = 0,
    ) -> None:
        self._name = name
        self.data = data
        self.errors = list(errors)
        self.links = tuple(SourceLink(url=url, title=url) for url in links)
        self.tokens_used = tokens_used
        self.calls: list[str] = []
        self.subjects: list[SubjectContext] = []

    @property
    def name(self) -> str:
        return self._name

    async def search(self, subject: SubjectContext) -> SourceFindings:
        self.calls.append(subject.subject_id)
        self.subjects.append(subject)
        if self.errors:
            raise self.errors.pop(0)
        if self.data is None:
            return SourceFindings(tokens_used=self.tokens_used)
        return SourceFindings(
            records=(SourceRecord(source_ref=self._name, data=dict(self.data)),),
            sources=self.links,
            tokens_used=self.tokens_used,
        )


class FakeVerifier:
    def __init__(
        self,
        name: str,
        claim_types: frozenset[ClaimType],
        result: VerifierResult | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self._name = name
        self._claim_types = claim_types
        self.result = result
        self.error = error
        self.calls: list[tuple[ClaimType, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def claim_types(self) -> frozenset[ClaimType]:
        return self._claim_types

    async def verify(
        self,
        claim_type: ClaimType,
        subject_name: str,
        context: PersonContext,
    ) -> VerifierResult | None:
        del context
        self.calls.append((claim_type, subject_name))
        if self.error is not None:
            raise self.error
        return self.result
