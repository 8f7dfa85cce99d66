"""Atomic, independently checkable claims re-derived from a merged record."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from numbers import Real
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from donorlens.domain.checkpoints import JSONValue


class ClaimType(StrEnum):
    SEC_INSIDER = "sec_insider"
    POLITICAL_GIVING = "political_giving"
    NONPROFIT_BOARD = "nonprofit_board"
    PROPERTY_VALUE = "property_value"
    BUSINESS_OWNERSHIP = "business_ownership"
    NET_WORTH = "net_worth"


@dataclass(slots=True, frozen=True, kw_only=True)
class SecInsiderClaim:
    description: str
    extracted_from: str
    has_filings: bool
    companies: tuple[str, ...] = ()
    claim_type: Literal[ClaimType.SEC_INSIDER] = ClaimType.SEC_INSIDER

    @property
    def value(self) -> JSONValue:
        return {"has_filings": self.has_filings, "companies": list(self.companies)}


@dataclass(slots=True, frozen=True, kw_only=True)
class PoliticalGivingClaim:
    description: str
    extracted_from: str
    total: float
    party_lean: str | None = None
    claim_type: Literal[ClaimType.POLITICAL_GIVING] = ClaimType.POLITICAL_GIVING

    @property
    def value(self) -> JSONValue:
        return {"total": self.total, "party_lean": self.party_lean}


@dataclass(slots=True, frozen=True, kw_only=True)
class NonprofitBoardClaim:
    description: str
    extracted_from: str
    organizations: tuple[str, ...]
    claim_type: Literal[ClaimType.NONPROFIT_BOARD] = ClaimType.NONPROFIT_BOARD

    @property
    def value(self) -> JSONValue:
        return list(self.organizations)


@dataclass(slots=True, frozen=True, kw_only=True)
class PropertyValueClaim:
    description: str
    extracted_from: str
    total_value: float
    claim_type: Literal[ClaimType.PROPERTY_VALUE] = ClaimType.PROPERTY_VALUE

    @property
    def value(self) -> JSONValue:
        return self.total_value


@dataclass(slots=True, frozen=True)
class BusinessRole:
    company: str
    role: str | None = None


@dataclass(slots=True, frozen=True, kw_only=True)
class BusinessOwnershipClaim:
    description: str
    extracted_from: str
    roles: tuple[BusinessRole, ...]
    claim_type: Literal[ClaimType.BUSINESS_OWNERSHIP] = ClaimType.BUSINESS_OWNERSHIP

    @property
    def value(self) -> JSONValue:
        return [{"company": role.company, "role": role.role} for role in self.roles]


@dataclass(slots=True, frozen=True, kw_only=True)
class NetWorthClaim:
    description: str
    extracted_from: str
    low: float | None = None
    high: float | None = None
    claim_type: Literal[ClaimType.NET_WORTH] = ClaimType.NET_WORTH

    @property
    def value(self) -> JSONValue:
        return {"low": self.low, "high": self.high}


type Claim = (
    SecInsiderClaim
    | PoliticalGivingClaim
    | NonprofitBoardClaim
    | PropertyValueClaim
    | BusinessOwnershipClaim
    | NetWorthClaim
)


def lookup(record: Mapping[str, JSONValue], path: str) -> JSONValue:
    """Follow a dotted path through nested mappings; ``None`` when any hop is missing."""

    current: JSONValue = dict(record)
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _number(value: JSONValue) -> float | None:
    if isinstance(value, Real) and not isinstance(value, bool):
        return float(value)
    return None


def _strings(value: JSONValue) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    items: list[str] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
        elif isinstance(item, Mapping):
            # board entries may be objects such as {"organization": ..., "role": ...}
            name = item.get("organization") or item.get("name")
            if isinstance(name, str) and name.strip():
                items.append(name.strip())
    return tuple(items)


def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _business_roles(value: JSONValue) -> tuple[BusinessRole, ...]:
    if not isinstance(value, list):
        return ()
    roles: list[BusinessRole] = []
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        company = entry.get("company")
        role = entry.get("role")
        if isinstance(company, str) and company.strip():
            roles.append(
                BusinessRole(company=company.strip(), role=role if isinstance(role, str) else None)
            )
    return tuple(roles)


def extract_claims(record: Mapping[str, JSONValue]) -> list[Claim]:
    """Return the checkable claims present in ``record``; empty and zero values yield none."""

    claims: list[Claim] = []

    companies = _strings(lookup(record, "wealth.securities.insider_at"))
    if lookup(record, "wealth.securities.has_sec_filings") is True or companies:
        claims.append(
            SecInsiderClaim(
                description=f"SEC insider at {', '.join(companies) or 'unknown companies'}",
                extracted_from="wealth.securities",
                has_filings=True,
                companies=companies,
            )
        )

    political_total = _number(lookup(record, "philanthropy.political_giving.total"))
    if political_total is not None and political_total > 0:
        party = lookup(record, "philanthropy.political_giving.party_lean")
        claims.append(
            PoliticalGivingClaim(
                description=f"Political contributions of {_money(political_total)}",
                extracted_from="philanthropy.political_giving.total",
                total=political_total,
                party_lean=party if isinstance(party, str) else None,
            )
        )

    boards = _strings(lookup(record, "philanthropy.nonprofit_boards"))
    if boards:
        claims.append(
            NonprofitBoardClaim(
                description=f"Board member at {', '.join(boards)}",
                extracted_from="philanthropy.nonprofit_boards",
                organizations=boards,
            )
        )
    foundations = _strings(lookup(record, "philanthropy.foundation_affiliations"))
    if foundations:
        claims.append(
            NonprofitBoardClaim(
                description=f"Foundation affiliations: {', '.join(foundations)}",
                extracted_from="philanthropy.foundation_affiliations",
                organizations=foundations,
            )
        )

    real_estate = _number(lookup(record, "wealth.real_estate.total_value"))
    if real_estate is not None and real_estate > 0:
        claims.append(
            PropertyValueClaim(
                description=f"Real estate value of {_money(real_estate)}",
                extracted_from="wealth.real_estate.total_value",
                total_value=real_estate,
            )
        )

    roles = _business_roles(lookup(record, "wealth.business_ownership"))
    if roles:
        claims.append(
            BusinessOwnershipClaim(
                description="Business roles: "
                + ", ".join(f"{role.role or 'role'} at {role.company}" for role in roles),
                extracted_from="wealth.business_ownership",
                roles=roles,
            )
        )

    low = _number(lookup(record, "metrics.estimated_net_worth_low"))
    high = _number(lookup(record, "metrics.estimated_net_worth_high"))
    if low or high:
        claims.append(
            NetWorthClaim(
                description=f"Net worth {_money(low or 0)}-{_money(high or 0)}",
                extracted_from="metrics",
                low=low,
                high=high,
            )
        )

    return claims
