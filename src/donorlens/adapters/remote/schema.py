"""Pydantic models for remote research and verification payloads."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DataConfidence = Literal["VERIFIED", "ESTIMATED", "UNVERIFIED"]
ResearchConfidence = Literal["HIGH", "MEDIUM", "LOW"]
CapacityRating = Literal["MAJOR", "PRINCIPAL", "LEADERSHIP", "ANNUAL"]
PartyLean = Literal["REPUBLICAN", "DEMOCRATIC", "BIPARTISAN", "NONE"]
Readiness = Literal["NOT_READY", "WARMING", "READY", "URGENT"]
TaxSmartOption = Literal["QCD", "STOCK", "DAF", "NONE"]

UNSTRUCTURED_SUMMARY = "Research could not be structured."


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class DonorlensBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ---------------------------------------------------------------------------
# strict prospect record


class ResearchSourceModel(DonorlensBaseModel):
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    data_provided: str = Field(min_length=1)


class PropertyRecord(DonorlensBaseModel):
    address: str = Field(min_length=1)
    value: float = Field(ge=0)
    source: str = Field(min_length=1)
    confidence: DataConfidence


class BusinessRecord(DonorlensBaseModel):
    company: str = Field(min_length=1)
    role: str = Field(min_length=1)
    estimated_value: float | None = Field(default=None, ge=0)
    source: str = Field(min_length=1)
    confidence: DataConfidence


class MajorGiftRecord(DonorlensBaseModel):
    organization: str = Field(min_length=1)
    amount: float = Field(gt=0)
    year: int | None = Field(default=None, ge=1900, le=2100)
    source: str = Field(min_length=1)


class ResearchMetrics(DonorlensBaseModel):
    estimated_net_worth_low: float | None = Field(ge=0)
    estimated_net_worth_high: float | None = Field(ge=0)
    estimated_gift_capacity: float | None = Field(ge=0)
    capacity_rating: CapacityRating
    romy_score: int = Field(ge=0, le=41)
    recommended_ask: float | None = Field(ge=0)
    confidence_level: ResearchConfidence

    @model_validator(mode="after")
    def _ordered_net_worth(self) -> Self:
        low, high = self.estimated_net_worth_low, self.estimated_net_worth_high
        if low is not None and high is not None and low > high:
            raise ValueError(
                "estimated_net_worth_low must be less than or equal to estimated_net_worth_high"
            )
        return self


class RealEstate(DonorlensBaseModel):
    total_value: float | None = Field(ge=0)
    properties: list[PropertyRecord] = Field(default_factory=list)


class Securities(DonorlensBaseModel):
    has_sec_filings: bool
    insider_at: list[str] = Field(default_factory=list)
    source: str | None = None


class ResearchWealth(DonorlensBaseModel):
    real_estate: RealEstate
    business_ownership: list[BusinessRecord] = Field(default_factory=list)
    securities: Securities


class PoliticalGiving(DonorlensBaseModel):
    total: float = Field(default=0, ge=0)
    party_lean: PartyLean
    source: Literal["FEC"] | None = None


class ResearchPhilanthropy(DonorlensBaseModel):
    political_giving: PoliticalGiving
    foundation_affiliations: list[str] = Field(default_factory=list)
    nonprofit_boards: list[str] = Field(default_factory=list)
    known_major_gifts: list[MajorGiftRecord] = Field(default_factory=list)


class Family(DonorlensBaseModel):
    spouse: str | None = None
    children_count: int | None = Field(default=None, ge=0)


class ResearchBackground(DonorlensBaseModel):
    age: int | None = Field(ge=18, le=120)
    education: list[str] = Field(default_factory=list)
    career_summary: str = ""
    family: Family


class CultivationStrategy(DonorlensBaseModel):
    readiness: Readiness
    next_steps: list[str] = Field(default_factory=list)
    best_solicitor: str = "Unknown"
    tax_smart_option: TaxSmartOption
    talking_points: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)


class ProspectRecord(DonorlensBaseModel):
    metrics: ResearchMetrics
    wealth: ResearchWealth
    philanthropy: ResearchPhilanthropy
    background: ResearchBackground
    strategy: CultivationStrategy
    sources: list[ResearchSourceModel] = Field(default_factory=list)
    executive_summary: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# lenient prospect record: every field defaulted


class LenientMetrics(DonorlensBaseModel):
    estimated_net_worth_low: float | None = None
    estimated_net_worth_high: float | None = None
    estimated_gift_capacity: float | None = None
    capacity_rating: CapacityRating = "ANNUAL"
    romy_score: float = 0
    recommended_ask: float | None = None
    confidence_level: ResearchConfidence = "LOW"


class LenientRealEstate(DonorlensBaseModel):
    total_value: float | None = None
    properties: list[Any] = Field(default_factory=list)


class LenientSecurities(DonorlensBaseModel):
    has_sec_filings: bool = False
    insider_at: list[str] = Field(default_factory=list)
    source: str | None = None


class LenientWealth(DonorlensBaseModel):
    real_estate: LenientRealEstate = Field(default_factory=LenientRealEstate)
    business_ownership: list[Any] = Field(default_factory=list)
    securities: LenientSecurities = Field(default_factory=LenientSecurities)


class LenientPoliticalGiving(DonorlensBaseModel):
    total: float = 0
    party_lean: PartyLean = "NONE"
    source: Literal["FEC"] | None = None


class LenientPhilanthropy(DonorlensBaseModel):
    political_giving: LenientPoliticalGiving = Field(default_factory=LenientPoliticalGiving)
    foundation_affiliations: list[str] = Field(default_factory=list)
    nonprofit_boards: list[str] = Field(default_factory=list)
    known_major_gifts: list[Any] = Field(default_factory=list)


class LenientFamily(DonorlensBaseModel):
    spouse: str | None = None
    children_count: float | None = None


class LenientBackground(DonorlensBaseModel):
    age: float | None = None
    education: list[str] = Field(default_factory=list)
    career_summary: str = ""
    family: LenientFamily = Field(default_factory=LenientFamily)


class LenientStrategy(DonorlensBaseModel):
    readiness: Readiness = "NOT_READY"
    next_steps: list[str] = Field(default_factory=list)
    best_solicitor: str = "Unknown"
    tax_smart_option: TaxSmartOption = "NONE"
    talking_points: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(default_factory=list)


class LenientProspectRecord(DonorlensBaseModel):
    metrics: LenientMetrics = Field(default_factory=LenientMetrics)
    wealth: LenientWealth = Field(default_factory=LenientWealth)
    philanthropy: LenientPhilanthropy = Field(default_factory=LenientPhilanthropy)
    background: LenientBackground = Field(default_factory=LenientBackground)
    strategy: LenientStrategy = Field(default_factory=LenientStrategy)
    sources: list[Any] = Field(default_factory=list)
    executive_summary: str = UNSTRUCTURED_SUMMARY


def lenient_record(data: object) -> dict[str, Any]:
    """Best-effort record: never raises, falls back to the all-defaults record."""

    try:
        return LenientProspectRecord.model_validate(data).model_dump(mode="json")
    except ValidationError:
        return LenientProspectRecord().model_dump(mode="json")


def correction_prompt(error: ValidationError) -> str:
    """Explain validation problems so the model can return a corrected record."""

    details: list[str] = []
    for issue in error.errors():
        path = ".".join(str(part) for part in issue["loc"]) or "(root)"
        guidance = ""
        context = issue.get("ctx") or {}
        if issue["type"] == "literal_error" and "expected" in context:
            guidance = f" (must be one of: {context['expected']})"
        elif "ge" in context or "gt" in context:
            guidance = f" (minimum: {context.get('ge', context.get('gt'))})"
        elif "le" in context or "lt" in context:
            guidance = f" (maximum: {context.get('le', context.get('lt'))})"
        details.append(f"- {path}: {issue['msg']}{guidance}")

    return (
        "Your JSON response had validation errors. "
        "Please fix these issues and return corrected JSON:\n\n"
        + "\n".join(details)
        + "\n\nRemember:\n"
        '- capacity_rating must be "MAJOR", "PRINCIPAL", "LEADERSHIP", or "ANNUAL"\n'
        "- romy_score must be 0-41\n"
        '- confidence_level must be "HIGH", "MEDIUM", or "LOW"\n'
        '- party_lean must be "REPUBLICAN", "DEMOCRATIC", "BIPARTISAN", or "NONE"\n'
        "- All number values must be non-negative\n"
        "- Use null for unknown values\n"
        "- Ensure all required string fields are non-empty"
    )


# ---------------------------------------------------------------------------
# remote search service


class SourceLinkPayload(DonorlensBaseModel):
    url: str
    title: str | None = None
    snippet: str | None = None


class SourceRecordPayload(DonorlensBaseModel):
    source_ref: str | None = None
    url: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class SearchResponse(DonorlensBaseModel):
    """Either structured ``records`` or raw model ``text`` to be parsed."""

    records: list[SourceRecordPayload] = Field(default_factory=list)
    text: str | None = None
    sources: list[SourceLinkPayload] = Field(default_factory=list)
    tokens_used: int = 0

    normalize_text = field_validator("text", mode="before")(_blank_to_none)


class CorrectionResponse(DonorlensBaseModel):
    text: str
    tokens_used: int = 0


# ---------------------------------------------------------------------------
# remote verification service


class CandidatePayload(DonorlensBaseModel):
    name: str
    city: str | None = None
    state: str | None = None
    employer: str | None = None
    title: str | None = None


class InsiderFilingPayload(DonorlensBaseModel):
    company: str
    form_type: str | None = None
    filed_on: date | None = None
    candidate: CandidatePayload | None = None


class ContributionPayload(DonorlensBaseModel):
    amount: float
    recipient: str | None = None
    party: str | None = None
    contributed_on: date | None = None
    candidate: CandidatePayload | None = None


class AffiliationPayload(DonorlensBaseModel):
    organization: str
    role: str | None = None
    candidate: CandidatePayload | None = None


class VerifyResponse(DonorlensBaseModel):
    filings: list[InsiderFilingPayload] = Field(default_factory=list)
    contributions: list[ContributionPayload] = Field(default_factory=list)
    party_lean: str | None = None
    affiliations: list[AffiliationPayload] = Field(default_factory=list)

    normalize_party = field_validator("party_lean", mode="before")(_blank_to_none)
