"""Scores whether a record from an external source refers to the subject."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Final

from .names import (
    EXECUTIVE_KEYWORDS,
    are_nicknames,
    is_common_name,
    levenshtein_similarity,
    normalize_company,
    normalize_state,
    parse_name,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

NAME_WEIGHT: Final = 0.5
LOCATION_WEIGHT: Final = 0.25
EMPLOYER_WEIGHT: Final = 0.15
TITLE_WEIGHT: Final = 0.1

LIKELY_MATCH_SCORE: Final = 0.5
LIKELY_MATCH_NAME: Final = 0.7
NEUTRAL: Final = 0.5


class MatchConfidence(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    VERY_LOW = "VERY_LOW"

    @classmethod
    def for_score(cls, score: float) -> MatchConfidence:
        if score >= 0.8:
            return cls.HIGH
        if score >= 0.6:
            return cls.MEDIUM
        if score >= 0.4:
            return cls.LOW
        return cls.VERY_LOW

    def downgraded(self) -> MatchConfidence:
        order = list(MatchConfidence)
        return order[min(order.index(self) + 1, len(order) - 1)]


@dataclass(slots=True, frozen=True, kw_only=True)
class PersonContext:
    name: str
    city: str | None = None
    state: str | None = None
    employer: str | None = None
    title: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class MatchCandidate:
    name: str
    source: str
    city: str | None = None
    state: str | None = None
    employer: str | None = None
    title: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class DisambiguationScore:
    overall_score: float
    confidence: MatchConfidence
    name_match: float
    location_match: float | None = None
    employer_match: float | None = None
    title_match: float | None = None
    is_likely_match: bool = False
    warnings: tuple[str, ...] = field(default=())


@dataclass(slots=True, frozen=True, kw_only=True)
class BestMatch:
    best: MatchCandidate | None
    score: DisambiguationScore | None
    alternatives: tuple[tuple[MatchCandidate, DisambiguationScore], ...] = ()


def _first_name_score(target: str, candidate: str) -> float:
    if not target or not candidate:
        return NEUTRAL
    if target == candidate:
        return 1.0
    if are_nicknames(target, candidate):
        return 0.9
    shorter, longer = sorted((target, candidate), key=len)
    if len(shorter) == 1 and longer.startswith(shorter):
        return 0.6
    if len(shorter) >= 3 and longer.startswith(shorter):
        return 0.7
    return 0.0


def _last_name_score(target: str, candidate: str) -> float:
    if target == candidate:
        return 1.0
    if levenshtein_similarity(target, candidate) > 0.8:
        return 0.8
    return 0.0


def _name_score(target: str, candidate: str) -> float:
    parsed_target = parse_name(target)
    parsed_candidate = parse_name(candidate)
    last = _last_name_score(parsed_target.last, parsed_candidate.last)
    if last == 0:
        return 0.0
    first = _first_name_score(parsed_target.first, parsed_candidate.first)
    if first == 0:
        return 0.0
    return 0.5 * last + 0.5 * first


def _location_score(target: PersonContext, candidate: MatchCandidate) -> float | None:
    components: list[float] = []

    target_state = normalize_state(target.state)
    candidate_state = normalize_state(candidate.state)
    if target_state and candidate_state:
        components.append(1.0 if target_state == candidate_state else 0.0)
    elif target_state or candidate_state:
        components.append(NEUTRAL)

    target_city = (target.city or "").strip().lower()
    candidate_city = (candidate.city or "").strip().lower()
    if target_city and candidate_city:
        if target_city == candidate_city:
            components.append(1.0)
        elif target_city in candidate_city or candidate_city in target_city:
            components.append(0.5)
        else:
            components.append(0.0)
    elif target_city or candidate_city:
        components.append(NEUTRAL)

    if not components:
        return None
    return sum(components) / len(components)


def _employer_score(target: str | None, candidate: str | None) -> float | None:
    if not target or not candidate:
        return None
    target_norm = normalize_company(target)
    candidate_norm = normalize_company(candidate)
    if target_norm == candidate_norm:
        return 1.0
    target_words = {word for word in target_norm.split() if len(word) > 2}
    candidate_words = {word for word in candidate_norm.split() if len(word) > 2}
    largest = max(len(target_words), len(candidate_words))
    if largest == 0:
        return 0.0
    return len(target_words & candidate_words) / largest


def _title_score(target: str | None, candidate: str | None) -> float | None:
    if not target or not candidate:
        return None
    target_norm = target.strip().lower()
    candidate_norm = candidate.strip().lower()
    if target_norm == candidate_norm:
        return 1.0
    target_exec = any(keyword in target_norm for keyword in EXECUTIVE_KEYWORDS)
    candidate_exec = any(keyword in candidate_norm for keyword in EXECUTIVE_KEYWORDS)
    if target_exec and candidate_exec:
        return 0.6
    return 0.3


class NameDisambiguator:
    """Weighted person matching: name 50%, location 25%, employer 15%, title 10%.

    Factors without data on the relevant side(s) drop out and the remaining weights
    are renormalised, so a bare name plus matching state is not penalised for the
    missing employer. A last-name or first-name mismatch forces the score to zero.
    Common names are flagged and, without a corroborating non-name factor, lose one
    confidence level; they are never rejected outright.
    """

    def score(self, target: PersonContext, candidate: MatchCandidate) -> DisambiguationScore:
        name = _name_score(target.name, candidate.name)
        location = _location_score(target, candidate)
        employer = _employer_score(target.employer, candidate.employer)
        title = _title_score(target.title, candidate.title)

        if name == 0:
            return DisambiguationScore(
                overall_score=0.0,
                confidence=MatchConfidence.VERY_LOW,
                name_match=0.0,
                location_match=location,
                employer_match=employer,
                title_match=title,
                warnings=("Name does not match",),
            )

        weighted = [(name, NAME_WEIGHT)]
        for value, weight in (
            (location, LOCATION_WEIGHT),
            (employer, EMPLOYER_WEIGHT),
            (title, TITLE_WEIGHT),
        ):
            if value is not None:
                weighted.append((value, weight))
        overall = sum(value * weight for value, weight in weighted) / sum(
            weight for _, weight in weighted
        )

        warnings: list[str] = []
        target_state = normalize_state(target.state)
        candidate_state = normalize_state(candidate.state)
        if target_state and candidate_state and target_state != candidate_state:
            warnings.append(f"State mismatch: target={target.state}, candidate={candidate.state}")
        if name < 0.8:
            warnings.append(f"Name is a partial match (score: {name:.2f})")

        confidence = MatchConfidence.for_score(overall)
        if is_common_name(target.name):
            warnings.append(
                "Common name: verification results may include multiple people with the same name"
            )
            corroborated = any(
                value is not None and value >= NEUTRAL for value in (location, employer, title)
            )
            if not corroborated:
                confidence = confidence.downgraded()

        return DisambiguationScore(
            overall_score=round(overall, 4),
            confidence=confidence,
            name_match=name,
            location_match=location,
            employer_match=employer,
            title_match=title,
            is_likely_match=overall >= LIKELY_MATCH_SCORE and name >= LIKELY_MATCH_NAME,
            warnings=tuple(warnings),
        )

    def find_best_match(
        self, target: PersonContext, candidates: Iterable[MatchCandidate]
    ) -> BestMatch:
        scored = sorted(
            ((candidate, self.score(target, candidate)) for candidate in candidates),
            key=lambda pair: pair[1].overall_score,
            reverse=True,
        )
        if not scored:
            return BestMatch(best=None, score=None)
        best, best_score = scored[0]
        alternatives = tuple(pair for pair in scored[1:] if pair[1].is_likely_match)
        if not best_score.is_likely_match:
            return BestMatch(best=None, score=None, alternatives=alternatives)
        return BestMatch(best=best, score=best_score, alternatives=alternatives)

    def subject_warnings(self, subject: PersonContext) -> list[str]:
        warnings: list[str] = []
        if is_common_name(subject.name):
            warnings.append(
                "Common name: verification results may include multiple people with the same name"
            )
        if not subject.state:
            warnings.append("No state provided: location matching disabled")
        if not subject.employer:
            warnings.append("No employer provided: employer matching disabled")
        return warnings

    @staticmethod
    def is_common_name(name: str) -> bool:
        return is_common_name(name)
