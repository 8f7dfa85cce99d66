"""Ports for persisting checkpoint records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from donorlens.domain.checkpoints import CheckpointRecord


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class CheckpointRepository(Repository["CheckpointRecord"], Protocol):
    """Persistence contract used by the durable checkpoint store."""

    def get(self, subject_id: str, step_name: str) -> CheckpointRecord | None: ...

    def list_for_subject(self, subject_id: str) -> list[CheckpointRecord]: ...

    def delete_for_subject(self, subject_id: str) -> int: ...

    def processing_before(self, threshold: datetime) -> list[CheckpointRecord]: ...

    def tokens_used(self, subject_id: str) -> int: ...

    def latest_completed(self, subject_id: str) -> CheckpointRecord | None: ...
