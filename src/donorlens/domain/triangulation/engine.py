"""Merges per-source records into one confidence-annotated record."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from .scoring import ConfidenceLevel, ConfidenceScorer, FieldConfidence, FieldObservation

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.ports.sources import SourceRecord
    from donorlens.domain.sources import SourceAuthorityRegistry

    from .scoring import ScoringOptions

log = getLogger(__name__)

SOURCES_KEY = "sources"


class NoSourceDataError(RuntimeError):
    """Raised when none of the sources returned a usable value."""


@dataclass(slots=True, frozen=True, kw_only=True)
class FieldConflict:
    path: str
    values: tuple[tuple[str, JSONValue], ...]
    resolution: str


@dataclass(slots=True, frozen=True, kw_only=True)
class LevelCounts:
    verified: int = 0
    corroborated: int = 0
    single_source: int = 0
    conflicted: int = 0
    estimated: int = 0

    @classmethod
    def tally(cls, fields: Iterable[FieldConfidence]) -> LevelCounts:
        counts = dict.fromkeys(ConfidenceLevel, 0)
        for confidence in fields:
            counts[confidence.level] += 1
        return cls(
            verified=counts[ConfidenceLevel.VERIFIED],
            corroborated=counts[ConfidenceLevel.CORROBORATED],
            single_source=counts[ConfidenceLevel.SINGLE_SOURCE],
            conflicted=counts[ConfidenceLevel.CONFLICTED],
            estimated=counts[ConfidenceLevel.ESTIMATED],
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceContribution:
    source_ref: str
    authority: float
    fields_provided: tuple[str, ...]


@dataclass(slots=True, frozen=True, kw_only=True)
class TriangulationResult:
    record: dict[str, JSONValue]
    fields: Mapping[str, FieldConfidence]
    conflicts: tuple[FieldConflict, ...]
    contributions: tuple[SourceContribution, ...]
    overall_confidence: float
    counts: LevelCounts = field(default_factory=LevelCounts)

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "record": self.record,
            "overall_confidence": self.overall_confidence,
            "counts": {
                "verified": self.counts.verified,
                "corroborated": self.counts.corroborated,
                "single_source": self.counts.single_source,
                "conflicted": self.counts.conflicted,
                "estimated": self.counts.estimated,
            },
            "fields": {path: confidence.to_payload() for path, confidence in self.fields.items()},
            "conflicts": [
                {
                    "field": conflict.path,
                    "values": [{"source": ref, "value": value} for ref, value in conflict.values],
                    "resolution": conflict.resolution,
                }
                for conflict in self.conflicts
            ],
            "contributions": [
                {
                    "source": contribution.source_ref,
                    "authority": contribution.authority,
                    "fields_provided": list(contribution.fields_provided),
                }
                for contribution in self.contributions
            ],
        }


def flatten(data: Mapping[str, JSONValue], prefix: str = "") -> Iterator[tuple[str, JSONValue]]:
    """Yield ``(dotted.path, value)`` leaves; sequences are leaves, not recursed into."""

    for key, value in data.items():
        if not prefix and key == SOURCES_KEY:
            continue
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, Mapping):
            yield from flatten(value, path)
        else:
            yield path, value


def set_path(target: dict[str, JSONValue], path: str, value: JSONValue) -> None:
    *parents, leaf = path.split(".")
    current = target
    for part in parents:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[leaf] = value


def merge_sources(records: Sequence[SourceRecord]) -> list[JSONValue]:
    """Combined source list of every record, first occurrence per URL kept."""

    seen: set[str] = set()
    merged: list[JSONValue] = []

    def add(entry: dict[str, JSONValue]) -> None:
        url = entry.get("url")
        if not isinstance(url, str) or not url or url in seen:
            return
        seen.add(url)
        merged.append(entry)

    for record in records:
        listed = record.data.get(SOURCES_KEY)
        if isinstance(listed, list):
            for entry in listed:
                if isinstance(entry, dict):
                    add(dict(entry))
        for link in record.links:
            add({"title": link.title or link.url, "url": link.url})
    return merged


class TriangulationEngine:
    def __init__(
        self,
        registry: SourceAuthorityRegistry,
        options: ScoringOptions | None = None,
    ) -> None:
        self.registry = registry
        self.scorer = ConfidenceScorer(registry, options)

    def triangulate(self, records: Sequence[SourceRecord]) -> TriangulationResult:
        observations: dict[str, list[FieldObservation]] = defaultdict(list)
        provided: dict[str, list[str]] = defaultdict(list)
        seen: set[tuple[str, str]] = set()

        for record in records:
            for path, value in flatten(record.data):
                # one observation per source and field; repeats of a source never corroborate
                if value is None or (record.source_ref, path) in seen:
                    continue
                seen.add((record.source_ref, path))
                observations[path].append(
                    FieldObservation(value=value, source_ref=record.source_ref, url=record.url)
                )
                provided[record.source_ref].append(path)

        if not observations:
            raise NoSourceDataError("No source returned any usable data")

        merged: dict[str, JSONValue] = {}
        fields: dict[str, FieldConfidence] = {}
        conflicts: list[FieldConflict] = []
        for path, field_observations in observations.items():
            confidence = self.scorer.score(field_observations)
            fields[path] = confidence
            set_path(merged, path, confidence.value)
            if confidence.level is ConfidenceLevel.CONFLICTED:
                conflicts.append(
                    FieldConflict(
                        path=path,
                        values=tuple((o.source_ref, o.value) for o in field_observations),
                        resolution=f"Using highest authority value: {confidence.value!r}",
                    )
                )

        merged[SOURCES_KEY] = merge_sources(records)
        overall = sum(c.score for c in fields.values()) / len(fields)
        if conflicts:
            log.info("Triangulation found %d conflicting field(s)", len(conflicts))

        return TriangulationResult(
            record=merged,
            fields=fields,
            conflicts=tuple(conflicts),
            contributions=tuple(
                SourceContribution(
                    source_ref=ref,
                    authority=self.registry.authority(ref),
                    fields_provided=tuple(paths),
                )
                for ref, paths in provided.items()
            ),
            overall_confidence=round(overall, 4),
            counts=LevelCounts.tally(fields.values()),
        )
