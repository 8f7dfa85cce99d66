"""Process-local checkpoint store for tests and throwaway runs."""

from __future__ import annotations

import copy
import threading
from dataclasses import replace
from typing import TYPE_CHECKING

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


def _snapshot(record: CheckpointRecord) -> CheckpointRecord:
    return replace(record, result_payload=copy.deepcopy(record.result_payload))


class InMemoryCheckpointStore:
    """Same semantics as the SQLAlchemy store, without durability across restarts."""

    def __init__(self, *, now: Callable[[], datetime] = utcnow) -> None:
        self._records: dict[tuple[str, str], CheckpointRecord] = {}
        self._lock = threading.Lock()
        self._now = now

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
        snapshot = copy.deepcopy(payload)
        self._update(subject_id, step_name, lambda r: r.complete(snapshot, meta, now=self._now()))

    def mark_failed(self, subject_id: str, step_name: str, error_message: str) -> None:
        self._update(subject_id, step_name, lambda r: r.fail(error_message, now=self._now()))

    def mark_skipped(self, subject_id: str, step_name: str, reason: str) -> None:
        self._update(subject_id, step_name, lambda r: r.skip(reason, now=self._now()))

    def mark_processing(self, subject_id: str, step_name: str) -> None:
        self._update(subject_id, step_name, lambda r: r.start(now=self._now()))

    def get_checkpoint(self, subject_id: str, step_name: str) -> CheckpointRecord | None:
        with self._lock:
            record = self._records.get((subject_id, step_name))
            return _snapshot(record) if record is not None else None

    def get_all_checkpoints(self, subject_id: str) -> list[CheckpointRecord]:
        with self._lock:
            records = [
                _snapshot(record)
                for (owner, _), record in self._records.items()
                if owner == subject_id
            ]
        return sorted(records, key=lambda record: record.created_at)

    def clear_checkpoints(self, subject_id: str) -> int:
        with self._lock:
            keys = [key for key in self._records if key[0] == subject_id]
            for key in keys:
                del self._records[key]
        return len(keys)

    def get_completion_status(self, subject_id: str) -> CompletionStatus:
        return CompletionStatus.from_records(self.get_all_checkpoints(subject_id))

    def stale_checkpoints(self, older_than: timedelta) -> list[CheckpointRecord]:
        threshold = self._now() - older_than
        with self._lock:
            return [
                _snapshot(record)
                for record in self._records.values()
                if record.status is StepStatus.PROCESSING and record.updated_at < threshold
            ]

    def total_tokens_used(self, subject_id: str) -> int:
        return sum(record.tokens_used for record in self.get_all_checkpoints(subject_id))

    def last_completed_step(self, subject_id: str) -> str | None:
        completed = [
            record
            for record in self.get_all_checkpoints(subject_id)
            if record.status is StepStatus.COMPLETED
        ]
        if not completed:
            return None
        return max(completed, key=lambda record: record.updated_at).step_name

    def _update(
        self,
        subject_id: str,
        step_name: str,
        mutate: Callable[[CheckpointRecord], None],
    ) -> None:
        with self._lock:
            key = (subject_id, step_name)
            record = self._records.get(key)
            if record is None:
                now = self._now()
                record = CheckpointRecord(
                    subject_id=subject_id, step_name=step_name, created_at=now, updated_at=now
                )
                self._records[key] = record
            mutate(record)
