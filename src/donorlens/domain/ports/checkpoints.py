"""Port for durable step checkpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import timedelta

    from donorlens.domain.checkpoints import (
        CheckpointRecord,
        CompletionStatus,
        JSONValue,
        StepMeta,
    )


@runtime_checkable
class CheckpointStore(Protocol):
    """Idempotent record of step outcomes keyed by (subject_id, step_name).

    Every write overwrites the previous record for the key and is visible to the
    next read once the call returns.
    """

    def has_completed(self, subject_id: str, step_name: str) -> bool: ...

    def get_result(self, subject_id: str, step_name: str) -> JSONValue | None:
        """Return the payload of a completed step, or ``None`` for any other status."""
        ...

    def save_result(
        self, subject_id: str, step_name: str, payload: JSONValue, meta: StepMeta
    ) -> None: ...

    def mark_failed(self, subject_id: str, step_name: str, error_message: str) -> None: ...

    def mark_skipped(self, subject_id: str, step_name: str, reason: str) -> None: ...

    def mark_processing(self, subject_id: str, step_name: str) -> None: ...

    def get_checkpoint(self, subject_id: str, step_name: str) -> CheckpointRecord | None: ...

    def get_all_checkpoints(self, subject_id: str) -> list[CheckpointRecord]: ...

    def clear_checkpoints(self, subject_id: str) -> int: ...

    def get_completion_status(self, subject_id: str) -> CompletionStatus: ...

    def stale_checkpoints(self, older_than: timedelta) -> list[CheckpointRecord]:
        """Records stuck in ``processing`` for longer than ``older_than``."""
        ...

    def total_tokens_used(self, subject_id: str) -> int: ...

    def last_completed_step(self, subject_id: str) -> str | None: ...
