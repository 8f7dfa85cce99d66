"""Durable checkpoint store on top of the SQLAlchemy unit of work."""

from __future__ import annotations

import threading
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from donorlens.adapters.sqlalchemy.unit_of_work import SqlAlchemyCheckpointUnitOfWork
from donorlens.domain.checkpoints import (
    CheckpointRecord,
    CompletionStatus,
    StepStatus,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime, timedelta

    from donorlens.domain.checkpoints import JSONValue, StepMeta
    from donorlens.domain.ports.unit_of_work import CheckpointUnitOfWork

log = getLogger(__name__)

type UnitOfWorkFactory = Callable[[], CheckpointUnitOfWork]


def _detached(record: CheckpointRecord) -> CheckpointRecord:
    # plain copy so callers never hold session-bound instances
    return CheckpointRecord(
        subject_id=record.subject_id,
        step_name=record.step_name,
        status=record.status,
        result_payload=record.result_payload,
        tokens_used=record.tokens_used,
        duration_ms=record.duration_ms,
        error_message=record.error_message,
        attempts=record.attempts,
        created_at=record.created_at,
        updated_at=record.updated_at,
        id=record.id,
    )


class SqlAlchemyCheckpointStore:
    """Each write runs in its own committed unit of work.

    Writes for the same key are serialised by a process-wide lock; a concurrent
    insert from another process surfaces as an ``IntegrityError`` and is retried as
    an update.
    """

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory = SqlAlchemyCheckpointUnitOfWork,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = unit_of_work_factory
        self._now = now
        self._write_lock = threading.Lock()

    def has_completed(self, subject_id: str, step_name: str) -> bool:
        record = self.get_checkpoint(subject_id, step_name)
        return record is not None and record.status is StepStatus.COMPLETED

    def get_result(self, subject_id: str, step_name: str) -> JSONValue | None:
        record = self.get_checkpoint(subject_id, step_name)
        if record is None or record.status is not StepStatus.COMPLETED:
            return None
        return record.result_payload

    def save_result(
        self, subject_id: str, step_name: str, payload: JSONValue, meta: StepMeta
    ) -> None:
        self._write(subject_id, step_name, lambda r: r.complete(payload, meta, now=self._now()))

    def mark_failed(self, subject_id: str, step_name: str, error_message: str) -> None:
        self._write(subject_id, step_name, lambda r: r.fail(error_message, now=self._now()))

    def mark_skipped(self, subject_id: str, step_name: str, reason: str) -> None:
        self._write(subject_id, step_name, lambda r: r.skip(reason, now=self._now()))

    def mark_processing(self, subject_id: str, step_name: str) -> None:
        self._write(subject_id, step_name, lambda r: r.start(now=self._now()))

    def get_checkpoint(self, subject_id: str, step_name: str) -> CheckpointRecord | None:
        with self._uow_factory() as uow:
            record = uow.repositories.checkpoints.get(subject_id, step_name)
            return _detached(record) if record is not None else None

    def get_all_checkpoints(self, subject_id: str) -> list[CheckpointRecord]:
        with self._uow_factory() as uow:
            return [
                _detached(record)
                for record in uow.repositories.checkpoints.list_for_subject(subject_id)
            ]

    def clear_checkpoints(self, subject_id: str) -> int:
        with self._write_lock, self._uow_factory() as uow:
            removed = uow.repositories.checkpoints.delete_for_subject(subject_id)
            uow.commit()
        return removed

    def get_completion_status(self, subject_id: str) -> CompletionStatus:
        return CompletionStatus.from_records(self.get_all_checkpoints(subject_id))

    def stale_checkpoints(self, older_than: timedelta) -> list[CheckpointRecord]:
        threshold = self._now() - older_than
        with self._uow_factory() as uow:
            return [
                _detached(record)
                for record in uow.repositories.checkpoints.processing_before(threshold)
            ]

    def total_tokens_used(self, subject_id: str) -> int:
        with self._uow_factory() as uow:
            return uow.repositories.checkpoints.tokens_used(subject_id)

    def last_completed_step(self, subject_id: str) -> str | None:
        with self._uow_factory() as uow:
            record = uow.repositories.checkpoints.latest_completed(subject_id)
            return record.step_name if record is not None else None

    def _write(
        self,
        subject_id: str,
        step_name: str,
        mutate: Callable[[CheckpointRecord], None],
    ) -> None:
        with self._write_lock:
            try:
                self._upsert(subject_id, step_name, mutate)
            except IntegrityError:
                log.debug("Concurrent insert for %s/%s, retrying as update", subject_id, step_name)
                self._upsert(subject_id, step_name, mutate)

    def _upsert(
        self,
        subject_id: str,
        step_name: str,
        mutate: Callable[[CheckpointRecord], None],
    ) -> None:
        with self._uow_factory() as uow:
            repository = uow.repositories.checkpoints
            record = repository.get(subject_id, step_name)
            if record is None:
                now = self._now()
                record = CheckpointRecord(
                    subject_id=subject_id, step_name=step_name, created_at=now, updated_at=now
                )
                repository.add(record)
            mutate(record)
            uow.commit()
