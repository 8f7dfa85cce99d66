"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from donorlens.adapters.sqlalchemy.mappings import step_checkpoint_table
from donorlens.domain.checkpoints import CheckpointRecord, StepStatus

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session

_columns = step_checkpoint_table.c


class SqlAlchemyCheckpointRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: CheckpointRecord) -> None:
        self.session.add(entity)

    def get(self, subject_id: str, step_name: str) -> CheckpointRecord | None:
        stmt = (
            select(CheckpointRecord)
            .where(_columns.subject_id == subject_id)
            .where(_columns.step_name == step_name)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_subject(self, subject_id: str) -> list[CheckpointRecord]:
        stmt = (
            select(CheckpointRecord)
            .where(_columns.subject_id == subject_id)
            .order_by(_columns.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def delete_for_subject(self, subject_id: str) -> int:
        stmt = delete(step_checkpoint_table).where(_columns.subject_id == subject_id)
        return self.session.execute(stmt).rowcount

    def processing_before(self, threshold: datetime) -> list[CheckpointRecord]:
        stmt = (
            select(CheckpointRecord)
            .where(_columns.status == StepStatus.PROCESSING)
            .where(_columns.updated_at < threshold)
            .order_by(_columns.updated_at)
        )
        return list(self.session.execute(stmt).scalars())

    def tokens_used(self, subject_id: str) -> int:
        stmt = select(func.coalesce(func.sum(_columns.tokens_used), 0)).where(
            _columns.subject_id == subject_id
        )
        return int(self.session.execute(stmt).scalar_one())

    def latest_completed(self, subject_id: str) -> CheckpointRecord | None:
        stmt = (
            select(CheckpointRecord)
            .where(_columns.subject_id == subject_id)
            .where(_columns.status == StepStatus.COMPLETED)
            .order_by(_columns.updated_at.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()
