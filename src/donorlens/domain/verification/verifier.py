"""Cross-checks claims from the merged record against authoritative services."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final, assert_never

from donorlens.domain.disambiguation import NameDisambiguator, PersonContext
from donorlens.domain.resilience import CircuitOpenError

from .claims import (
    BusinessOwnershipClaim,
    ClaimType,
    NetWorthClaim,
    NonprofitBoardClaim,
    PoliticalGivingClaim,
    PropertyValueClaim,
    SecInsiderClaim,
    extract_claims,
    lookup,
)
from .report import QuickCheck, build_report
from .results import (
    ClaimVerification,
    InsiderFilings,
    NonprofitAffiliations,
    PoliticalContributions,
    VerificationStatus,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.disambiguation import MatchCandidate
    from donorlens.domain.ports.sources import AuthoritativeVerifier
    from donorlens.domain.resilience import CircuitBreakerRegistry

    from .claims import Claim
    from .report import VerificationReport
    from .results import VerifierResult

log = getLogger(__name__)

# contributions below this amount never appear in FEC itemised records
REPORTING_FLOOR: Final = 200.0
AGREEMENT_VARIANCE: Final = 0.3
MAX_ORGANIZATIONS_CHECKED: Final = 3
DEFAULT_BREAKER: Final = "verification"


@dataclass(slots=True, frozen=True)
class _Unavailable:
    reason: str
    failed: bool = False


def _overlaps(left: str, right: str) -> bool:
    a, b = left.strip().lower(), right.strip().lower()
    return bool(a) and bool(b) and (a in b or b in a)


class ClaimVerifier:
    """Verifies each claim type with the collaborator registered for it.

    Every collaborator call goes through the shared verification breaker. Records
    that carry a match candidate are kept only when the disambiguator considers them
    a likely match for the subject.
    """

    def __init__(
        self,
        verifiers: Iterable[AuthoritativeVerifier],
        breakers: CircuitBreakerRegistry,
        *,
        disambiguator: NameDisambiguator | None = None,
        breaker_name: str = DEFAULT_BREAKER,
    ) -> None:
        self._verifiers: dict[ClaimType, AuthoritativeVerifier] = {}
        for verifier in verifiers:
            for claim_type in verifier.claim_types:
                self._verifiers.setdefault(claim_type, verifier)
        self.breakers = breakers
        self.disambiguator = disambiguator or NameDisambiguator()
        self.breaker_name = breaker_name

    async def verify(self, claim: Claim, subject: PersonContext) -> ClaimVerification:
        match claim:
            case SecInsiderClaim():
                return await self._verify_insider(claim, subject)
            case PoliticalGivingClaim():
                return await self._verify_political(claim, subject)
            case NonprofitBoardClaim():
                return await self._verify_nonprofit(claim, subject)
            case PropertyValueClaim():
                return ClaimVerification(
                    claim=claim,
                    status=VerificationStatus.UNVERIFIABLE,
                    confidence=0.5,
                    source="Public records (AI synthesis)",
                    details="Property values cannot be verified without a property records service",
                )
            case BusinessOwnershipClaim():
                return ClaimVerification(
                    claim=claim,
                    status=VerificationStatus.UNVERIFIABLE,
                    confidence=0.5,
                    source="Public records (AI synthesis)",
                    details="Business ownership cannot be verified without a registry service",
                )
            case NetWorthClaim():
                return ClaimVerification(
                    claim=claim,
                    status=VerificationStatus.UNVERIFIABLE,
                    confidence=0.4,
                    source="Calculated estimate",
                    details="Net worth is estimated from indicators and cannot be verified",
                )
            case _:
                assert_never(claim)

    async def verify_record(
        self,
        record: Mapping[str, JSONValue],
        subject: PersonContext,
    ) -> VerificationReport:
        subject = self.enrich_subject(subject, record)
        claims = extract_claims(record)
        log.info("Verifying %d claim(s) for %s", len(claims), subject.name)
        verifications = await asyncio.gather(*(self.verify(claim, subject) for claim in claims))
        report = build_report(
            subject.name,
            verifications,
            disambiguation_warnings=self.disambiguator.subject_warnings(subject),
            is_common_name=self.disambiguator.is_common_name(subject.name),
        )
        log.info(
            "Verification for %s: %d verified, %d contradicted, %d partial, %d unverifiable",
            subject.name,
            report.counts.verified,
            report.counts.contradicted,
            report.counts.partial,
            report.counts.unverifiable,
        )
        return report

    async def quick_check(
        self, record: Mapping[str, JSONValue], subject: PersonContext
    ) -> QuickCheck:
        """Only the securities and political-giving claims: the fastest, most reliable checks."""

        claims = [
            claim
            for claim in extract_claims(record)
            if isinstance(claim, (SecInsiderClaim, PoliticalGivingClaim))
        ]
        verifications = await asyncio.gather(*(self.verify(claim, subject) for claim in claims))
        hallucinations = tuple(v for v in verifications if v.is_hallucination)
        confidence = sum(v.confidence for v in verifications) / max(len(verifications), 1)
        return QuickCheck(
            has_hallucinations=bool(hallucinations),
            hallucinations=hallucinations,
            confidence=round(confidence, 4),
        )

    @staticmethod
    def enrich_subject(subject: PersonContext, record: Mapping[str, JSONValue]) -> PersonContext:
        """Fill a missing employer or title from the first business-ownership entry."""

        if subject.employer and subject.title:
            return subject
        ownership = lookup(record, "wealth.business_ownership")
        first = ownership[0] if isinstance(ownership, list) and ownership else None
        if not isinstance(first, dict):
            return subject
        company = first.get("company")
        role = first.get("role")
        return PersonContext(
            name=subject.name,
            city=subject.city,
            state=subject.state,
            employer=subject.employer or (company if isinstance(company, str) else None),
            title=subject.title or (role if isinstance(role, str) else None),
        )

    async def _consult(
        self, claim_type: ClaimType, subject: PersonContext
    ) -> VerifierResult | _Unavailable:
        verifier = self._verifiers.get(claim_type)
        if verifier is None:
            return _Unavailable("no verification service configured")
        breaker = self.breakers.get_or_create(self.breaker_name)
        try:
            result = await breaker.execute(
                lambda: verifier.verify(claim_type, subject.name, subject)
            )
        except CircuitOpenError as exc:
            log.warning("Skipping %s check for %s: %s", claim_type, subject.name, exc)
            return _Unavailable(str(exc), failed=True)
        except Exception as exc:
            log.warning("%s verification via %s failed: %s", claim_type, verifier.name, exc)
            return _Unavailable(f"Verification failed: {exc}", failed=True)
        if result is None:
            return _Unavailable(f"{verifier.name} unavailable")
        return result

    def _is_subject(self, subject: PersonContext, candidate: MatchCandidate | None) -> bool:
        if candidate is None:
            return True
        return self.disambiguator.score(subject, candidate).is_likely_match

    def _unverifiable(self, claim: Claim, source: str, outcome: _Unavailable) -> ClaimVerification:
        return ClaimVerification(
            claim=claim,
            status=VerificationStatus.UNVERIFIABLE,
            confidence=0.3 if outcome.failed else 0.5,
            source=source,
            details=outcome.reason,
        )

    async def _verify_insider(
        self, claim: SecInsiderClaim, subject: PersonContext
    ) -> ClaimVerification:
        outcome = await self._consult(ClaimType.SEC_INSIDER, subject)
        if isinstance(outcome, _Unavailable):
            return self._unverifiable(claim, "SEC EDGAR", outcome)
        if not isinstance(outcome, InsiderFilings):
            return self._unverifiable(claim, "SEC EDGAR", _Unavailable("unexpected response"))

        filings = [f for f in outcome.filings if self._is_subject(subject, f.candidate)]
        found_companies = [filing.company for filing in filings]
        api_value: JSONValue = {"has_filings": bool(filings), "companies": found_companies}

        if claim.has_filings and not filings:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.CONTRADICTED,
                confidence=0.95,
                source="SEC EDGAR",
                api_value=api_value,
                details=f'SEC EDGAR search found no insider filings for "{subject.name}"',
            )
        if claim.has_filings:
            matched = any(
                _overlaps(claimed, found)
                for claimed in claim.companies
                for found in found_companies
            )
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.VERIFIED if matched else VerificationStatus.PARTIAL,
                confidence=0.95 if matched else 0.7,
                source="SEC EDGAR",
                api_value=api_value,
                details=f"Found {len(filings)} SEC filing(s)",
            )
        if filings:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.PARTIAL,
                confidence=0.8,
                source="SEC EDGAR",
                api_value=api_value,
                details=f"SEC EDGAR found {len(filings)} filing(s) not mentioned in the record",
            )
        return ClaimVerification(
            claim=claim,
            status=VerificationStatus.VERIFIED,
            confidence=0.8,
            source="SEC EDGAR",
            api_value=api_value,
            details="No SEC insider filings found (confirmed)",
        )

    async def _verify_political(
        self, claim: PoliticalGivingClaim, subject: PersonContext
    ) -> ClaimVerification:
        outcome = await self._consult(ClaimType.POLITICAL_GIVING, subject)
        if isinstance(outcome, _Unavailable):
            return self._unverifiable(claim, "FEC", outcome)
        if not isinstance(outcome, PoliticalContributions):
            return self._unverifiable(claim, "FEC", _Unavailable("unexpected response"))

        api_total = sum(
            c.amount for c in outcome.contributions if self._is_subject(subject, c.candidate)
        )
        claimed = claim.total
        api_value: JSONValue = {"total": api_total, "party_lean": outcome.party_lean}

        if claimed > 0 and api_total == 0:
            if claimed <= REPORTING_FLOOR:
                return ClaimVerification(
                    claim=claim,
                    status=VerificationStatus.UNVERIFIABLE,
                    confidence=0.4,
                    source="FEC",
                    api_value=api_value,
                    details="Amount below the FEC reporting threshold",
                )
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.CONTRADICTED,
                confidence=0.8,
                source="FEC",
                api_value=api_value,
                details=f'FEC records show no itemised contributions for "{subject.name}"',
            )

        variance = abs(api_total - claimed) / max(api_total, claimed, 1)
        if api_total > 0 and variance <= AGREEMENT_VARIANCE:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.VERIFIED,
                confidence=0.95,
                source="FEC",
                api_value=api_value,
                details=f"FEC shows ${api_total:,.0f} in contributions",
            )
        if api_total > 0:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.PARTIAL,
                confidence=0.6,
                source="FEC",
                api_value=api_value,
                details=(
                    f"Record claims ${claimed:,.0f}, FEC shows ${api_total:,.0f} "
                    f"({round(variance * 100)}% variance)"
                ),
            )
        return ClaimVerification(
            claim=claim,
            status=VerificationStatus.VERIFIED,
            confidence=0.8,
            source="FEC",
            api_value=api_value,
        )

    async def _verify_nonprofit(
        self, claim: NonprofitBoardClaim, subject: PersonContext
    ) -> ClaimVerification:
        if not claim.organizations:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.VERIFIED,
                confidence=0.6,
                source="ProPublica",
                api_value=[],
                details="No affiliations claimed",
            )
        outcome = await self._consult(ClaimType.NONPROFIT_BOARD, subject)
        if isinstance(outcome, _Unavailable):
            return self._unverifiable(claim, "ProPublica", outcome)
        if not isinstance(outcome, NonprofitAffiliations):
            return self._unverifiable(claim, "ProPublica", _Unavailable("unexpected response"))

        known = [
            a.organization for a in outcome.affiliations if self._is_subject(subject, a.candidate)
        ]
        if not known:
            return ClaimVerification(
                claim=claim,
                status=VerificationStatus.CONTRADICTED,
                confidence=0.8,
                source="ProPublica",
                api_value=[],
                details="Claimed nonprofit affiliations but no records found for this person",
            )

        checked = claim.organizations[:MAX_ORGANIZATIONS_CHECKED]
        confirmed = [org for org in checked if any(_overlaps(org, found) for found in known)]
        rate = len(confirmed) / len(checked)
        if rate == 1:
            status = VerificationStatus.VERIFIED
        elif rate >= 0.5:
            status = VerificationStatus.PARTIAL
        else:
            status = VerificationStatus.UNVERIFIABLE
        return ClaimVerification(
            claim=claim,
            status=status,
            confidence=round(0.5 + rate * 0.3, 4),
            source="ProPublica",
            api_value=list(confirmed),
            details=f"{len(confirmed)}/{len(checked)} organizations confirmed",
        )
