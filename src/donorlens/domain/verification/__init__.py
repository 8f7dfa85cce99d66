"""Claim extraction and cross-reference verification."""

from __future__ import annotations

from .claims import (
    BusinessOwnershipClaim,
    BusinessRole,
    Claim,
    ClaimType,
    NetWorthClaim,
    NonprofitBoardClaim,
    PoliticalGivingClaim,
    PropertyValueClaim,
    SecInsiderClaim,
    extract_claims,
    lookup,
)
from .report import QuickCheck, StatusCounts, VerificationReport, build_report
from .results import (
    ClaimVerification,
    Contribution,
    InsiderFiling,
    InsiderFilings,
    NonprofitAffiliation,
    NonprofitAffiliations,
    PoliticalContributions,
    VerificationStatus,
    VerifierResult,
)
from .verifier import REPORTING_FLOOR, ClaimVerifier

__all__ = [
    "REPORTING_FLOOR",
    "BusinessOwnershipClaim",
    "BusinessRole",
    "Claim",
    "ClaimType",
    "ClaimVerification",
    "ClaimVerifier",
    "Contribution",
    "InsiderFiling",
    "InsiderFilings",
    "NetWorthClaim",
    "NonprofitAffiliation",
    "NonprofitAffiliations",
    "PoliticalContributions",
    "PropertyValueClaim",
    "QuickCheck",
    "SecInsiderClaim",
    "StatusCounts",
    "VerificationReport",
    "VerificationStatus",
    "VerifierResult",
    "build_report",
    "extract_claims",
    "lookup",
]
