"""In-process adapters."""

from __future__ import annotations

from .checkpoint_store import InMemoryCheckpointStore

__all__ = ["InMemoryCheckpointStore"]
