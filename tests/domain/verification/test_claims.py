from __future__ import annotations

from donorlens.domain.verification import (
    BusinessOwnershipClaim,
    BusinessRole,
    NetWorthClaim,
    NonprofitBoardClaim,
    PoliticalGivingClaim,
    PropertyValueClaim,
    SecInsiderClaim,
    extract_claims,
    lookup,
)


def test_lookup_follows_dotted_paths() -> None:
    record = {"wealth": {"real_estate": {"total_value": 1_200_000}}}

    assert lookup(record, "wealth.real_estate.total_value") == 1_200_000
    assert lookup(record, "wealth.securities.has_sec_filings") is None
    assert lookup(record, "wealth.real_estate.total_value.nested") is None


def test_extracts_every_claim_type_from_a_full_record() -> None:
    record = {
        "wealth": {
            "securities": {"has_sec_filings": True, "insider_at": ["Acme Corp"]},
            "real_estate": {"total_value": 2_500_000},
            "business_ownership": [{"company": "Acme Corp", "role": "CEO"}, {"role": "no company"}],
        },
        "philanthropy": {
            "political_giving": {"total": 12_500, "party_lean": "DEM"},
            "nonprofit_boards": ["Portland Art Museum", {"organization": "Oregon Food Bank"}],
            "foundation_affiliations": ["Doe Family Foundation"],
        },
        "metrics": {"estimated_net_worth_low": 5_000_000, "estimated_net_worth_high": 10_000_000},
    }

    claims = extract_claims(record)

    assert [type(claim) for claim in claims] == [
        SecInsiderClaim,
        PoliticalGivingClaim,
        NonprofitBoardClaim,
        NonprofitBoardClaim,
        PropertyValueClaim,
        BusinessOwnershipClaim,
        NetWorthClaim,
    ]
    insider = claims[0]
    assert isinstance(insider, SecInsiderClaim)
    assert insider.companies == ("Acme Corp",)
    political = claims[1]
    assert isinstance(political, PoliticalGivingClaim)
    assert political.total == 12_500
    assert political.party_lean == "DEM"
    assert political.description == "Political contributions of $12,500"
    boards = claims[2]
    assert isinstance(boards, NonprofitBoardClaim)
    assert boards.organizations == ("Portland Art Museum", "Oregon Food Bank")
    business = claims[5]
    assert isinstance(business, BusinessOwnershipClaim)
    assert business.roles == (BusinessRole(company="Acme Corp", role="CEO"),)


def test_empty_and_zero_values_yield_no_claims() -> None:
    record = {
        "wealth": {"securities": {"has_sec_filings": False}, "real_estate": {"total_value": 0}},
        "philanthropy": {"political_giving": {"total": 0}, "nonprofit_boards": []},
        "metrics": {"estimated_net_worth_low": None},
    }

    assert extract_claims(record) == []


def test_insider_companies_alone_imply_filings() -> None:
    claims = extract_claims({"wealth": {"securities": {"insider_at": ["Acme Corp"]}}})

    assert len(claims) == 1
    claim = claims[0]
    assert isinstance(claim, SecInsiderClaim)
    assert claim.has_filings is True
    assert claim.value == {"has_filings": True, "companies": ["Acme Corp"]}


def test_boolean_totals_are_not_numbers() -> None:
    assert extract_claims({"philanthropy": {"political_giving": {"total": True}}}) == []
