"""Person matching across external records."""

from __future__ import annotations

from .names import is_common_name, levenshtein_similarity, normalize_state, parse_name
from .scorer import (
    BestMatch,
    DisambiguationScore,
    MatchCandidate,
    MatchConfidence,
    NameDisambiguator,
    PersonContext,
)

__all__ = [
    "BestMatch",
    "DisambiguationScore",
    "MatchCandidate",
    "MatchConfidence",
    "NameDisambiguator",
    "PersonContext",
    "is_common_name",
    "levenshtein_similarity",
    "normalize_state",
    "parse_name",
]
