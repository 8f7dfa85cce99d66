"""Completeness scoring for a merged prospect record."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from donorlens.domain.verification.claims import lookup

if TYPE_CHECKING:
    from collections.abc import Mapping

    from donorlens.domain.checkpoints import JSONValue

MAX_QUALITY_SCORE: Final = 100
UNSTRUCTURED_MARKER: Final = "could not be structured"


def _number(record: Mapping[str, JSONValue], path: str) -> float:
    value = lookup(record, path)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _count(record: Mapping[str, JSONValue], path: str) -> int:
    value = lookup(record, path)
    return len(value) if isinstance(value, list) else 0


def _text(record: Mapping[str, JSONValue], path: str) -> str:
    value = lookup(record, path)
    return value if isinstance(value, str) else ""


def data_quality_score(record: Mapping[str, JSONValue]) -> int:
    """Score 0-100 for how much of the record is filled in.

    Sources are worth up to 25 points, wealth 25, philanthropy 20, background 15 and
    the summary metrics 15.
    """

    score = min(_count(record, "sources") * 5, 25)

    if _number(record, "wealth.real_estate.total_value"):
        score += 10
    if _count(record, "wealth.real_estate.properties"):
        score += 5
    if _count(record, "wealth.business_ownership"):
        score += 5
    if lookup(record, "wealth.securities.has_sec_filings") is True:
        score += 5

    if _number(record, "philanthropy.political_giving.total") > 0:
        score += 8
    if _count(record, "philanthropy.foundation_affiliations"):
        score += 6
    if _count(record, "philanthropy.known_major_gifts"):
        score += 6

    if _number(record, "background.age"):
        score += 3
    if _count(record, "background.education"):
        score += 4
    if len(_text(record, "background.career_summary")) > 50:
        score += 5
    if _text(record, "background.family.spouse"):
        score += 3

    if _number(record, "metrics.estimated_net_worth_low"):
        score += 5
    if _number(record, "metrics.estimated_gift_capacity"):
        score += 5
    if _number(record, "metrics.romy_score") > 0:
        score += 5

    return min(score, MAX_QUALITY_SCORE)


def has_minimal_data(record: Mapping[str, JSONValue]) -> bool:
    """Whether the record holds at least one usable fact about the subject."""

    career = _text(record, "background.career_summary")
    return any(
        (
            _number(record, "wealth.real_estate.total_value") > 0,
            _count(record, "wealth.business_ownership") > 0,
            lookup(record, "wealth.securities.has_sec_filings") is True,
            _number(record, "philanthropy.political_giving.total") > 0,
            _count(record, "philanthropy.foundation_affiliations") > 0,
            _count(record, "philanthropy.nonprofit_boards") > 0,
            len(career) > 20 and UNSTRUCTURED_MARKER not in career,
            _count(record, "sources") > 0,
        )
    )
