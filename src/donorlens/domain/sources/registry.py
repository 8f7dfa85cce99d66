"""Authority classification for source references (URLs or named APIs)."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from donorlens.domain.checkpoints import JSONValue


class SourceCategory(StrEnum):
    GOVERNMENT_API = "GOVERNMENT_API"
    GOVERNMENT_RECORDS = "GOVERNMENT_RECORDS"
    NONPROFIT_DATA = "NONPROFIT_DATA"
    COMMERCIAL_DB = "COMMERCIAL_DB"
    PROFESSIONAL = "PROFESSIONAL"
    MAJOR_NEWS = "MAJOR_NEWS"
    GENERAL_NEWS = "GENERAL_NEWS"
    AI_SYNTHESIS = "AI_SYNTHESIS"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    UNKNOWN = "UNKNOWN"


CATEGORY_AUTHORITY: Final[Mapping[SourceCategory, float]] = MappingProxyType(
    {
        SourceCategory.GOVERNMENT_API: 1.0,
        SourceCategory.GOVERNMENT_RECORDS: 0.95,
        SourceCategory.NONPROFIT_DATA: 0.9,
        SourceCategory.COMMERCIAL_DB: 0.8,
        SourceCategory.PROFESSIONAL: 0.7,
        SourceCategory.MAJOR_NEWS: 0.6,
        SourceCategory.GENERAL_NEWS: 0.5,
        SourceCategory.AI_SYNTHESIS: 0.4,
        SourceCategory.SOCIAL_MEDIA: 0.2,
        SourceCategory.UNKNOWN: 0.3,
    }
)

GOVERNMENT_CATEGORIES: Final = frozenset(
    {SourceCategory.GOVERNMENT_API, SourceCategory.GOVERNMENT_RECORDS}
)


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceDefinition:
    id: str
    name: str
    category: SourceCategory
    authority: float
    patterns: tuple[re.Pattern[str], ...] = ()

    def matches(self, reference: str) -> bool:
        return any(pattern.search(reference) for pattern in self.patterns)


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceClassification:
    source_id: str | None
    category: SourceCategory
    authority: float


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceLink:
    url: str
    title: str | None = None
    snippet: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class WeightedSource:
    url: str
    domain: str
    category: SourceCategory
    authority: float
    title: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class CategoryBreakdown:
    category: SourceCategory
    count: int
    average_authority: float

    @property
    def contribution(self) -> float:
        return self.count * self.average_authority


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceAssessment:
    overall_confidence: float
    breakdown: tuple[CategoryBreakdown, ...]
    top_sources: tuple[WeightedSource, ...]
    weaknesses: tuple[str, ...]
    recommendations: tuple[str, ...]

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "overall_confidence": self.overall_confidence,
            "label": confidence_label(self.overall_confidence).label,
            "breakdown": [
                {
                    "category": str(entry.category),
                    "count": entry.count,
                    "average_authority": round(entry.average_authority, 4),
                }
                for entry in self.breakdown
            ],
            "top_sources": [
                {"url": source.url, "domain": source.domain, "authority": source.authority}
                for source in self.top_sources
            ],
            "weaknesses": list(self.weaknesses),
            "recommendations": list(self.recommendations),
        }


@dataclass(slots=True, frozen=True)
class ConfidenceLabel:
    label: str
    description: str


def _patterns(*expressions: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(expression, re.IGNORECASE) for expression in expressions)


def _definition(
    id: str,  # noqa: A002
    name: str,
    category: SourceCategory,
    authority: float,
    patterns: Sequence[str],
) -> SourceDefinition:
    return SourceDefinition(
        id=id,
        name=name,
        category=category,
        authority=authority,
        patterns=_patterns(*patterns),
    )


DEFAULT_SOURCES: Final[tuple[SourceDefinition, ...]] = (
    _definition(
        "sec_edgar",
        "SEC EDGAR",
        SourceCategory.GOVERNMENT_API,
        1.0,
        (r"sec\.gov", r"edgar"),
    ),
    _definition(
        "fec",
        "FEC.gov",
        SourceCategory.GOVERNMENT_API,
        1.0,
        (r"fec\.gov",),
    ),
    _definition(
        "state_sos",
        "State Secretary of State",
        SourceCategory.GOVERNMENT_RECORDS,
        0.95,
        (r"sos\.[a-z]{2}\.gov", r"business\.[a-z]{2}\.gov", r"corp\.[a-z]{2}\.gov"),
    ),
    _definition(
        "propublica",
        "ProPublica Nonprofit Explorer",
        SourceCategory.NONPROFIT_DATA,
        0.95,
        (r"propublica\.org", r"nonprofitexplorer"),
    ),
    _definition(
        "guidestar",
        "GuideStar/Candid",
        SourceCategory.NONPROFIT_DATA,
        0.9,
        (r"guidestar", r"candid\.org"),
    ),
    _definition(
        "county_assessor",
        "County Assessor",
        SourceCategory.GOVERNMENT_RECORDS,
        0.95,
        (r"assessor", r"propertytax"),
    ),
    _definition(
        "linkedin",
        "LinkedIn",
        SourceCategory.PROFESSIONAL,
        0.8,
        (r"linkedin\.com",),
    ),
    _definition(
        "bloomberg",
        "Bloomberg",
        SourceCategory.COMMERCIAL_DB,
        0.85,
        (r"bloomberg\.com",),
    ),
    _definition(
        "crunchbase",
        "Crunchbase",
        SourceCategory.COMMERCIAL_DB,
        0.75,
        (r"crunchbase\.com",),
    ),
    _definition(
        "zillow",
        "Zillow",
        SourceCategory.COMMERCIAL_DB,
        0.7,
        (r"zillow\.com",),
    ),
    _definition(
        "redfin",
        "Redfin",
        SourceCategory.COMMERCIAL_DB,
        0.7,
        (r"redfin\.com",),
    ),
    _definition(
        "wikipedia",
        "Wikipedia",
        SourceCategory.GENERAL_NEWS,
        0.5,
        (r"wikipedia\.org",),
    ),
    _definition("perplexity", "Perplexity AI", SourceCategory.AI_SYNTHESIS, 0.5, ()),
    _definition("gemini", "Google Gemini", SourceCategory.AI_SYNTHESIS, 0.5, ()),
    _definition("linkup", "LinkUp", SourceCategory.AI_SYNTHESIS, 0.5, ()),
)

# most specific first; the first matching rule wins
CATEGORY_RULES: Final[tuple[tuple[re.Pattern[str], SourceCategory], ...]] = tuple(
    (pattern, category)
    for category, expressions in (
        (
            SourceCategory.GOVERNMENT_API,
            (r"sec\.gov", r"fec\.gov", r"irs\.gov", r"usaspending\.gov", r"(^|[/.])data\.gov"),
        ),
        (
            SourceCategory.GOVERNMENT_RECORDS,
            (r"\.gov(/|$)", r"countyclerk", r"assessor", r"sos\.state", r"secretary.*state"),
        ),
        (
            SourceCategory.NONPROFIT_DATA,
            (r"propublica\.org", r"guidestar", r"candid\.org", r"open990", r"foundationcenter"),
        ),
        (
            SourceCategory.COMMERCIAL_DB,
            (
                r"zillow\.com",
                r"redfin\.com",
                r"realtor\.com",
                r"trulia\.com",
                r"crunchbase\.com",
                r"pitchbook\.com",
                r"bloomberg\.com/profile",
                r"dnb\.com",
            ),
        ),
        (
            SourceCategory.PROFESSIONAL,
            (r"linkedin\.com", r"glassdoor\.com", r"angel\.co", r"about\.[a-z]+\.com"),
        ),
        (
            SourceCategory.MAJOR_NEWS,
            (
                r"nytimes\.com",
                r"wsj\.com",
                r"bloomberg\.com",
                r"reuters\.com",
                r"apnews\.com",
                r"forbes\.com",
                r"(^|[/.])ft\.com",
                r"washingtonpost\.com",
                r"latimes\.com",
                r"cnbc\.com",
                r"fortune\.com",
                r"businessinsider\.com",
            ),
        ),
        (SourceCategory.GENERAL_NEWS, (r"news", r"\.com/article", r"patch\.com")),
        (
            SourceCategory.AI_SYNTHESIS,
            (r"perplexity", r"gemini", r"openai", r"anthropic", r"\bllm\b", r"ai[ _-]synthesis"),
        ),
        (
            SourceCategory.SOCIAL_MEDIA,
            (
                r"twitter\.com",
                r"(^|[/.])x\.com",
                r"facebook\.com",
                r"instagram\.com",
                r"tiktok\.com",
            ),
        ),
    )
    for pattern in _patterns(*expressions)
)

_CONFIDENCE_LABELS: Final = (
    (0.8, ConfidenceLabel("HIGH", "Multiple authoritative sources confirm key data points")),
    (0.6, ConfidenceLabel("MEDIUM", "Good source coverage but some data unverified")),
    (0.4, ConfidenceLabel("LOW", "Limited sources - verify before major gift outreach")),
)
_VERY_LOW = ConfidenceLabel(
    "VERY LOW", "Insufficient verification - treat as preliminary data only"
)


def extract_domain(url: str) -> str:
    host = urlsplit(url if "://" in url else f"//{url}").hostname
    if not host:
        return url
    return host.removeprefix("www.")


def confidence_label(score: float) -> ConfidenceLabel:
    for threshold, label in _CONFIDENCE_LABELS:
        if score >= threshold:
            return label
    return _VERY_LOW


class SourceAuthorityRegistry:
    """Maps a source reference to a category and a fixed authority weight.

    Lookup order: exact source id or name, then the per-source patterns (which carry
    authority overrides such as SEC EDGAR = 1.0), then the ordered category rules.
    Anything unmatched is ``UNKNOWN`` at 0.3.
    """

    def __init__(self, definitions: Iterable[SourceDefinition] = DEFAULT_SOURCES) -> None:
        self._definitions = tuple(definitions)
        keyed: dict[str, SourceDefinition] = {}
        for definition in self._definitions:
            keyed.setdefault(definition.id.lower(), definition)
            keyed.setdefault(definition.name.lower(), definition)
        self._by_key = MappingProxyType(keyed)

    @property
    def definitions(self) -> tuple[SourceDefinition, ...]:
        return self._definitions

    def definition(self, source_id: str) -> SourceDefinition | None:
        return self._by_key.get(source_id.strip().lower())

    def classify(self, source_ref: str | None) -> SourceClassification:
        reference = (source_ref or "").strip().lower()
        if not reference:
            return self._unknown()

        exact = self._by_key.get(reference)
        if exact is not None:
            return self._from_definition(exact)

        for definition in self._definitions:
            if definition.matches(reference):
                return self._from_definition(definition)

        for pattern, category in CATEGORY_RULES:
            if pattern.search(reference):
                return SourceClassification(
                    source_id=None, category=category, authority=CATEGORY_AUTHORITY[category]
                )
        return self._unknown()

    def authority(self, source_ref: str | None) -> float:
        return self.classify(source_ref).authority

    def weigh(self, links: Iterable[SourceLink]) -> list[WeightedSource]:
        weighted: list[WeightedSource] = []
        for link in links:
            classification = self.classify(link.url)
            weighted.append(
                WeightedSource(
                    url=link.url,
                    domain=extract_domain(link.url),
                    category=classification.category,
                    authority=classification.authority,
                    title=link.title,
                )
            )
        return weighted

    def assess(
        self,
        links: Iterable[SourceLink],
        *,
        api_verification: bool | None = None,
    ) -> SourceAssessment:
        """Source-based confidence for a whole record.

        ``api_verification`` is ``None`` when no authoritative cross-check ran, else
        whether it passed.
        """

        weighted = self.weigh(links)
        by_category: dict[SourceCategory, list[WeightedSource]] = defaultdict(list)
        for source in weighted:
            by_category[source.category].append(source)

        breakdown = sorted(
            (
                CategoryBreakdown(
                    category=category,
                    count=len(sources),
                    average_authority=sum(s.authority for s in sources) / len(sources),
                )
                for category, sources in by_category.items()
            ),
            key=lambda entry: entry.contribution,
            reverse=True,
        )

        weaknesses: list[str] = []
        recommendations: list[str] = []
        has_government = any(category in GOVERNMENT_CATEGORIES for category in by_category)
        has_nonprofit = SourceCategory.NONPROFIT_DATA in by_category
        has_commercial = SourceCategory.COMMERCIAL_DB in by_category

        confidence = sum(s.authority for s in weighted) / len(weighted) if weighted else 0.0
        if len(by_category) >= 3:
            confidence *= 1.1
        if has_government:
            confidence *= 1.15
        if api_verification is True:
            confidence *= 1.2
        elif api_verification is False:
            confidence *= 0.7
            weaknesses.append("API verification found discrepancies with source data")
        confidence = min(1.0, confidence)

        if not has_government:
            weaknesses.append("No government or official sources cited")
        if SourceCategory.AI_SYNTHESIS in by_category and not has_government and not has_nonprofit:
            weaknesses.append("Heavily reliant on AI synthesis without authoritative verification")
        if len(weighted) < 3:
            weaknesses.append("Limited number of sources (< 3)")

        if not has_government:
            recommendations.append("Verify key claims against SEC, FEC, or government records")
        if not has_nonprofit and not has_commercial:
            recommendations.append("Cross-reference with ProPublica or property records")
        if confidence < 0.5:
            recommendations.append("Low confidence - consider manual verification before outreach")

        top_sources = sorted(weighted, key=lambda s: s.authority, reverse=True)[:5]
        return SourceAssessment(
            overall_confidence=round(confidence, 4),
            breakdown=tuple(breakdown),
            top_sources=tuple(top_sources),
            weaknesses=tuple(weaknesses),
            recommendations=tuple(recommendations),
        )

    def _from_definition(self, definition: SourceDefinition) -> SourceClassification:
        return SourceClassification(
            source_id=definition.id, category=definition.category, authority=definition.authority
        )

    @staticmethod
    def _unknown() -> SourceClassification:
        return SourceClassification(
            source_id=None,
            category=SourceCategory.UNKNOWN,
            authority=CATEGORY_AUTHORITY[SourceCategory.UNKNOWN],
        )
