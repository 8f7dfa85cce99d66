"""Multi-source fusion with field-level confidence."""

from __future__ import annotations

from .agreement import DEFAULT_TOLERANCE, values_agree
from .engine import (
    FieldConflict,
    LevelCounts,
    NoSourceDataError,
    SourceContribution,
    TriangulationEngine,
    TriangulationResult,
    flatten,
    set_path,
)
from .scoring import (
    ConfidenceLevel,
    ConfidenceScorer,
    FieldConfidence,
    FieldObservation,
    ScoringOptions,
    SourceCitation,
)

__all__ = [
    "DEFAULT_TOLERANCE",
    "ConfidenceLevel",
    "ConfidenceScorer",
    "FieldConfidence",
    "FieldConflict",
    "FieldObservation",
    "LevelCounts",
    "NoSourceDataError",
    "ScoringOptions",
    "SourceCitation",
    "SourceContribution",
    "TriangulationEngine",
    "TriangulationResult",
    "flatten",
    "set_path",
    "values_agree",
]
