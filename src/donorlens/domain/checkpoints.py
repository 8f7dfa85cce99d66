"""Checkpoint records: the durable outcome of one pipeline step for one subject."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

MAX_ERROR_LENGTH: Final[int] = 1000

type JSONValue = str | int | float | bool | None | list[JSONValue] | dict[str, JSONValue]


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


class StepStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True, kw_only=True)
class StepMeta:
    tokens_used: int = 0
    duration_ms: int | None = None


@dataclass(kw_only=True)
class CheckpointRecord:
    """One row per (subject_id, step_name); every status change overwrites it."""

    subject_id: str
    step_name: str
    status: StepStatus = StepStatus.PENDING
    result_payload: JSONValue = None
    tokens_used: int = 0
    duration_ms: int | None = None
    error_message: str | None = None
    attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def start(self, *, now: datetime | None = None) -> None:
        self.status = StepStatus.PROCESSING
        self.attempts += 1
        self.error_message = None
        self.updated_at = now or utcnow()

    def complete(
        self, payload: JSONValue, meta: StepMeta, *, now: datetime | None = None
    ) -> None:
        self.status = StepStatus.COMPLETED
        self.result_payload = payload
        self.tokens_used = meta.tokens_used
        self.duration_ms = meta.duration_ms
        self.error_message = None
        self.updated_at = now or utcnow()

    def fail(self, message: str, *, now: datetime | None = None) -> None:
        self.status = StepStatus.FAILED
        self.result_payload = None
        self.error_message = message[:MAX_ERROR_LENGTH]
        self.updated_at = now or utcnow()

    def skip(self, reason: str, *, now: datetime | None = None) -> None:
        self.status = StepStatus.SKIPPED
        self.result_payload = {"reason": reason}
        self.error_message = None
        self.updated_at = now or utcnow()

    @property
    def skip_reason(self) -> str | None:
        if self.status is not StepStatus.SKIPPED or not isinstance(self.result_payload, dict):
            return None
        reason = self.result_payload.get("reason")
        return reason if isinstance(reason, str) else None


@dataclass(slots=True, frozen=True, kw_only=True)
class CompletionStatus:
    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    pending: int = 0
    processing: int = 0

    @property
    def is_finished(self) -> bool:
        return self.total > 0 and self.pending == 0 and self.processing == 0

    @classmethod
    def from_records(cls, records: list[CheckpointRecord]) -> CompletionStatus:
        counts = dict.fromkeys(StepStatus, 0)
        for record in records:
            counts[record.status] += 1
        return cls(
            total=len(records),
            completed=counts[StepStatus.COMPLETED],
            failed=counts[StepStatus.FAILED],
            skipped=counts[StepStatus.SKIPPED],
            pending=counts[StepStatus.PENDING],
            processing=counts[StepStatus.PROCESSING],
        )
