"""Aggregation of claim verdicts into a verification report."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from .results import VerificationStatus

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from donorlens.domain.checkpoints import JSONValue

    from .results import ClaimVerification

STATUS_WEIGHTS: Final[Mapping[VerificationStatus, float]] = MappingProxyType(
    {
        VerificationStatus.VERIFIED: 1.0,
        VerificationStatus.PARTIAL: 0.7,
        VerificationStatus.UNVERIFIABLE: 0.5,
        VerificationStatus.CONTRADICTED: 0.2,
    }
)


@dataclass(slots=True, frozen=True, kw_only=True)
class StatusCounts:
    total: int = 0
    verified: int = 0
    partial: int = 0
    unverifiable: int = 0
    contradicted: int = 0


@dataclass(slots=True, frozen=True, kw_only=True)
class VerificationReport:
    subject_name: str
    verifications: tuple[ClaimVerification, ...]
    counts: StatusCounts
    overall_confidence: float
    hallucinations: tuple[ClaimVerification, ...]
    recommendations: tuple[str, ...]
    disambiguation_warnings: tuple[str, ...] = ()
    is_common_name: bool = False

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "subject_name": self.subject_name,
            "counts": {
                "total": self.counts.total,
                "verified": self.counts.verified,
                "partial": self.counts.partial,
                "unverifiable": self.counts.unverifiable,
                "contradicted": self.counts.contradicted,
            },
            "overall_confidence": self.overall_confidence,
            "verifications": [v.to_payload() for v in self.verifications],
            "hallucinations": [v.to_payload() for v in self.hallucinations],
            "recommendations": list(self.recommendations),
            "disambiguation_warnings": list(self.disambiguation_warnings),
            "is_common_name": self.is_common_name,
        }


@dataclass(slots=True, frozen=True, kw_only=True)
class QuickCheck:
    has_hallucinations: bool
    hallucinations: tuple[ClaimVerification, ...]
    confidence: float


def weighted_confidence(verifications: Sequence[ClaimVerification]) -> float:
    total = sum(v.confidence * STATUS_WEIGHTS[v.status] for v in verifications)
    return round(total / max(len(verifications), 1), 4)


def count_statuses(verifications: Sequence[ClaimVerification]) -> StatusCounts:
    by_status = dict.fromkeys(VerificationStatus, 0)
    for verification in verifications:
        by_status[verification.status] += 1
    return StatusCounts(
        total=len(verifications),
        verified=by_status[VerificationStatus.VERIFIED],
        partial=by_status[VerificationStatus.PARTIAL],
        unverifiable=by_status[VerificationStatus.UNVERIFIABLE],
        contradicted=by_status[VerificationStatus.CONTRADICTED],
    )


def recommendations_for(counts: StatusCounts, *, is_common_name: bool) -> list[str]:
    recommendations: list[str] = []
    if counts.contradicted:
        recommendations.append(
            f"{counts.contradicted} claim(s) contradicted by official sources"
            " - review before outreach"
        )
    if counts.total and counts.verified == 0:
        recommendations.append(
            "No claims could be verified against official sources - treat data as unconfirmed"
        )
    if counts.total and counts.verified >= counts.total * 0.5:
        recommendations.append("Majority of claims verified - high confidence in data quality")
    if counts.unverifiable > counts.verified:
        recommendations.append(
            "Most data from AI synthesis only"
            " - consider manual verification for major gift prospects"
        )
    if is_common_name and counts.contradicted == 0 and counts.verified > 0:
        recommendations.append(
            "Common name detected - verify this is the correct person before major gift outreach"
        )
    return recommendations


def build_report(
    subject_name: str,
    verifications: Sequence[ClaimVerification],
    *,
    disambiguation_warnings: Sequence[str] = (),
    is_common_name: bool = False,
) -> VerificationReport:
    counts = count_statuses(verifications)
    return VerificationReport(
        subject_name=subject_name,
        verifications=tuple(verifications),
        counts=counts,
        overall_confidence=weighted_confidence(verifications),
        hallucinations=tuple(v for v in verifications if v.is_hallucination),
        recommendations=tuple(recommendations_for(counts, is_common_name=is_common_name)),
        disambiguation_warnings=tuple(disambiguation_warnings),
        is_common_name=is_common_name,
    )
