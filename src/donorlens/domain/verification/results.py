"""What authoritative collaborators return, and the per-claim verdicts built from it."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from datetime import date

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.disambiguation import MatchCandidate

    from .claims import Claim


class VerificationStatus(StrEnum):
    VERIFIED = "VERIFIED"
    CONTRADICTED = "CONTRADICTED"
    UNVERIFIABLE = "UNVERIFIABLE"
    PARTIAL = "PARTIAL"


@dataclass(slots=True, frozen=True, kw_only=True)
class InsiderFiling:
    company: str
    form_type: str | None = None
    filed_on: date | None = None
    candidate: MatchCandidate | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class Contribution:
    amount: float
    recipient: str | None = None
    party: str | None = None
    contributed_on: date | None = None
    candidate: MatchCandidate | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class NonprofitAffiliation:
    organization: str
    role: str | None = None
    candidate: MatchCandidate | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class InsiderFilings:
    filings: tuple[InsiderFiling, ...] = ()
    kind: Literal["insider_filings"] = "insider_filings"


@dataclass(slots=True, frozen=True, kw_only=True)
class PoliticalContributions:
    contributions: tuple[Contribution, ...] = ()
    party_lean: str | None = None
    kind: Literal["political_contributions"] = "political_contributions"

    @property
    def total(self) -> float:
        return sum(contribution.amount for contribution in self.contributions)


@dataclass(slots=True, frozen=True, kw_only=True)
class NonprofitAffiliations:
    affiliations: tuple[NonprofitAffiliation, ...] = ()
    kind: Literal["nonprofit_affiliations"] = "nonprofit_affiliations"


type VerifierResult = InsiderFilings | PoliticalContributions | NonprofitAffiliations


@dataclass(slots=True, frozen=True, kw_only=True)
class ClaimVerification:
    claim: Claim
    status: VerificationStatus
    confidence: float
    source: str
    api_value: JSONValue = None
    details: str | None = None

    @property
    def is_hallucination(self) -> bool:
        return self.status is VerificationStatus.CONTRADICTED

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "claim": self.claim.description,
            "claim_type": self.claim.claim_type.value,
            "claimed_value": self.claim.value,
            "api_value": self.api_value,
            "status": self.status.value,
            "confidence": self.confidence,
            "source": self.source,
            "details": self.details,
        }
