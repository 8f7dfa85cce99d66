"""SQLAlchemy adapter package for donorlens."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers, step_checkpoint_table
from .repositories import SqlAlchemyCheckpointRepository

__all__ = [
    "SqlAlchemyCheckpointRepository",
    "create_all_tables",
    "mapper_registry",
    "start_mappers",
    "step_checkpoint_table",
]
