"""Authoritative verification backed by a remote records service."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx

from donorlens.adapters.http_resilience import ResilientClient
from donorlens.domain.disambiguation import MatchCandidate
from donorlens.domain.verification import (
    ClaimType,
    Contribution,
    InsiderFiling,
    InsiderFilings,
    NonprofitAffiliation,
    NonprofitAffiliations,
    PoliticalContributions,
)

from .schema import CandidatePayload, VerifyResponse
from .source import raise_for_service_status

if TYPE_CHECKING:
    from collections.abc import Callable

    from donorlens.config.http_resilience import ResilienceConfig
    from donorlens.config.remote import RemoteServiceConfig
    from donorlens.domain.disambiguation import PersonContext
    from donorlens.domain.verification import VerifierResult

log = getLogger(__name__)

VERIFY_PATH: Final = "verify"


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def empty_result(claim_type: ClaimType) -> VerifierResult:
    """The answer for "service responded, nothing on record"."""

    match claim_type:
        case ClaimType.SEC_INSIDER:
            return InsiderFilings()
        case ClaimType.POLITICAL_GIVING:
            return PoliticalContributions()
        case ClaimType.NONPROFIT_BOARD:
            return NonprofitAffiliations()
        case _:
            raise ValueError(f"No verification result shape for {claim_type}")


def _candidate(payload: CandidatePayload | None, source: str) -> MatchCandidate | None:
    if payload is None:
        return None
    return MatchCandidate(
        name=payload.name,
        source=source,
        city=payload.city,
        state=payload.state,
        employer=payload.employer,
        title=payload.title,
    )


def translate(claim_type: ClaimType, response: VerifyResponse, source: str) -> VerifierResult:
    match claim_type:
        case ClaimType.SEC_INSIDER:
            return InsiderFilings(
                filings=tuple(
                    InsiderFiling(
                        company=filing.company,
                        form_type=filing.form_type,
                        filed_on=filing.filed_on,
                        candidate=_candidate(filing.candidate, source),
                    )
                    for filing in response.filings
                )
            )
        case ClaimType.POLITICAL_GIVING:
            return PoliticalContributions(
                contributions=tuple(
                    Contribution(
                        amount=contribution.amount,
                        recipient=contribution.recipient,
                        party=contribution.party,
                        contributed_on=contribution.contributed_on,
                        candidate=_candidate(contribution.candidate, source),
                    )
                    for contribution in response.contributions
                ),
                party_lean=response.party_lean,
            )
        case ClaimType.NONPROFIT_BOARD:
            return NonprofitAffiliations(
                affiliations=tuple(
                    NonprofitAffiliation(
                        organization=affiliation.organization,
                        role=affiliation.role,
                        candidate=_candidate(affiliation.candidate, source),
                    )
                    for affiliation in response.affiliations
                )
            )
        case _:
            raise ValueError(f"No verification result shape for {claim_type}")


@dataclass(slots=True)
class HttpVerifier:
    """``AuthoritativeVerifier`` that POSTs lookups to ``<base_url>/verify``.

    404 means no record (an empty result); 503 or an unreachable service means the
    service is unavailable (``None``). Other failures raise so the breaker sees them.
    """

    config: RemoteServiceConfig
    claim_types: frozenset[ClaimType]
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    @property
    def name(self) -> str:
        return self.config.service

    async def verify(
        self,
        claim_type: ClaimType,
        subject_name: str,
        context: PersonContext,
    ) -> VerifierResult | None:
        body = {
            "claim_type": str(claim_type),
            "subject_name": subject_name,
            "context": {
                "city": context.city,
                "state": context.state,
                "employer": context.employer,
                "title": context.title,
            },
        }
        async with self.client_factory(self.config.resilience) as client:
            try:
                response = await client.post(
                    VERIFY_PATH,
                    json=body,
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                )
            except httpx.TransportError as exc:
                log.warning("%s unreachable: %s", self.name, exc)
                return None

        if response.status_code == httpx.codes.NOT_FOUND:
            return empty_result(claim_type)
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            log.warning("%s unavailable (HTTP 503)", self.name)
            return None
        raise_for_service_status(self.name, response)
        return translate(claim_type, VerifyResponse.model_validate(response.json()), self.name)
