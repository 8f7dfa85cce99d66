"""Domain port definitions for adapters."""

from __future__ import annotations

from .checkpoints import CheckpointStore
from .persistence import CheckpointRepository, Repository
from .sources import AuthoritativeVerifier, SourceAdapter, SourceFindings, SourceRecord
from .unit_of_work import (
    CheckpointRepositories,
    CheckpointUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AuthoritativeVerifier",
    "CheckpointRepositories",
    "CheckpointRepository",
    "CheckpointStore",
    "CheckpointUnitOfWork",
    "Repository",
    "RepositoryCollection",
    "SourceAdapter",
    "SourceFindings",
    "SourceRecord",
    "UnitOfWork",
]
