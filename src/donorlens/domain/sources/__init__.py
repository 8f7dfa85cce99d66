"""Source authority classification."""

from __future__ import annotations

from .registry import (
    CATEGORY_AUTHORITY,
    DEFAULT_SOURCES,
    CategoryBreakdown,
    ConfidenceLabel,
    SourceAssessment,
    SourceAuthorityRegistry,
    SourceCategory,
    SourceClassification,
    SourceDefinition,
    SourceLink,
    WeightedSource,
    confidence_label,
    extract_domain,
)

__all__ = [
    "CATEGORY_AUTHORITY",
    "DEFAULT_SOURCES",
    "CategoryBreakdown",
    "ConfidenceLabel",
    "SourceAssessment",
    "SourceAuthorityRegistry",
    "SourceCategory",
    "SourceClassification",
    "SourceDefinition",
    "SourceLink",
    "WeightedSource",
    "confidence_label",
    "extract_domain",
]
