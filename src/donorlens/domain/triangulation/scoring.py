"""Field-level confidence from observations of differing authority."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from .agreement import DEFAULT_TOLERANCE, is_number, values_agree

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.sources import SourceAuthorityRegistry, SourceCategory


class ConfidenceLevel(StrEnum):
    VERIFIED = "VERIFIED"
    CORROBORATED = "CORROBORATED"
    SINGLE_SOURCE = "SINGLE_SOURCE"
    CONFLICTED = "CONFLICTED"
    ESTIMATED = "ESTIMATED"


@dataclass(slots=True, frozen=True, kw_only=True)
class ScoringOptions:
    verified_threshold: float = 0.9
    corroboration_count: int = 2
    numeric_tolerance: float = DEFAULT_TOLERANCE


@dataclass(slots=True, frozen=True, kw_only=True)
class FieldObservation:
    value: JSONValue
    source_ref: str
    url: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceCitation:
    source_ref: str
    source_id: str | None
    category: SourceCategory
    authority: float
    value: JSONValue
    url: str | None = None

    @property
    def label(self) -> str:
        return self.source_id or self.source_ref


@dataclass(slots=True, frozen=True, kw_only=True)
class FieldConfidence:
    value: JSONValue
    level: ConfidenceLevel
    score: float
    sources: tuple[SourceCitation, ...] = ()
    conflict_note: str | None = None

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "level": self.level.value,
            "score": self.score,
            "sources": [citation.label for citation in self.sources],
            "conflict_note": self.conflict_note,
        }


ESTIMATED = FieldConfidence(value=None, level=ConfidenceLevel.ESTIMATED, score=0.0)


def _format_value(value: JSONValue) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if is_number(value):
        return f"{value:,}"
    if isinstance(value, str):
        return value if len(value) <= 50 else f"{value[:47]}..."
    if isinstance(value, list):
        return f"[{len(value)} items]"
    return str(value)


def _conflict_note(agreeing: Sequence[SourceCitation], dissenting: Sequence[SourceCitation]) -> str:
    details = ", ".join(
        f"{citation.label}: {_format_value(citation.value)}" for citation in dissenting
    )
    if len(agreeing) > 1:
        support = "agrees with " + ", ".join(citation.label for citation in agreeing)
    else:
        support = f"from {agreeing[0].label}"
    return f"Conflict: {details}. Primary value {support}."


def _consensus(agreeing: Sequence[SourceCitation]) -> JSONValue:
    top = agreeing[0].value
    numbers = [citation for citation in agreeing if is_number(citation.value)]
    if len(agreeing) == 1 or len(numbers) != len(agreeing):
        return top
    total_weight = sum(citation.authority for citation in numbers)
    if total_weight == 0:
        return top
    weighted = sum(
        float(c.value) * c.authority  # pyright: ignore[reportArgumentType]
        for c in numbers
    )
    mean = weighted / total_weight
    if all(isinstance(citation.value, int) for citation in numbers):
        return round(mean)
    return round(mean, 2)


class ConfidenceScorer:
    """Scores one field; the highest-authority observation always wins a disagreement."""

    def __init__(
        self, registry: SourceAuthorityRegistry, options: ScoringOptions | None = None
    ) -> None:
        self.registry = registry
        self.options = options or ScoringOptions()

    def cite(self, observation: FieldObservation) -> SourceCitation:
        classification = self.registry.classify(observation.source_ref)
        return SourceCitation(
            source_ref=observation.source_ref,
            source_id=classification.source_id,
            category=classification.category,
            authority=classification.authority,
            value=observation.value,
            url=observation.url,
        )

    def score(self, observations: Iterable[FieldObservation]) -> FieldConfidence:
        citations = sorted(
            (self.cite(o) for o in observations if o.value is not None),
            key=lambda citation: citation.authority,
            reverse=True,
        )
        if not citations:
            return ESTIMATED

        opts = self.options
        top = citations[0]
        verified = top.authority >= opts.verified_threshold

        if len(citations) == 1:
            if verified:
                return FieldConfidence(
                    value=top.value,
                    level=ConfidenceLevel.VERIFIED,
                    score=top.authority,
                    sources=(top,),
                )
            return FieldConfidence(
                value=top.value,
                level=ConfidenceLevel.SINGLE_SOURCE,
                score=round(top.authority * 0.7, 4),
                sources=(top,),
            )

        agreeing: list[SourceCitation] = []
        dissenting: list[SourceCitation] = []
        for citation in citations:
            if values_agree(top.value, citation.value, opts.numeric_tolerance):
                agreeing.append(citation)
            else:
                dissenting.append(citation)

        if dissenting:
            return FieldConfidence(
                value=top.value,
                level=ConfidenceLevel.CONFLICTED,
                score=round(top.authority * 0.6, 4),
                sources=tuple(citations),
                conflict_note=_conflict_note(agreeing, dissenting),
            )

        if len(agreeing) >= opts.corroboration_count:
            mean = sum(c.authority for c in agreeing) / len(agreeing)
            if verified:
                return FieldConfidence(
                    value=_consensus(agreeing),
                    level=ConfidenceLevel.VERIFIED,
                    score=round(min(1.0, mean + 0.1), 4),
                    sources=tuple(agreeing),
                )
            return FieldConfidence(
                value=_consensus(agreeing),
                level=ConfidenceLevel.CORROBORATED,
                score=round(min(0.95, mean + 0.15), 4),
                sources=tuple(agreeing),
            )

        return FieldConfidence(
            value=top.value,
            level=ConfidenceLevel.VERIFIED if verified else ConfidenceLevel.SINGLE_SOURCE,
            score=round(top.authority * 0.8, 4),
            sources=tuple(citations),
        )
