"""Ports for research sources and authoritative verification services."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from donorlens.domain.sources import SourceLink

if TYPE_CHECKING:
    from donorlens.domain.checkpoints import JSONValue
    from donorlens.domain.disambiguation import PersonContext
    from donorlens.domain.subject import SubjectContext
    from donorlens.domain.verification.claims import ClaimType
    from donorlens.domain.verification.results import VerifierResult


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceRecord:
    """One source's view of the subject, shaped like the merged record."""

    source_ref: str
    data: Mapping[str, JSONValue]
    url: str | None = None
    links: tuple[SourceLink, ...] = ()

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "source_ref": self.source_ref,
            "url": self.url,
            "data": dict(self.data),
            "links": [
                {"url": link.url, "title": link.title, "snippet": link.snippet}
                for link in self.links
            ],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, JSONValue]) -> SourceRecord:
        data = payload.get("data")
        url = payload.get("url")
        raw_links = payload.get("links")
        links: list[SourceLink] = []
        if isinstance(raw_links, list):
            for entry in raw_links:
                if isinstance(entry, Mapping) and isinstance(entry.get("url"), str):
                    title = entry.get("title")
                    snippet = entry.get("snippet")
                    links.append(
                        SourceLink(
                            url=str(entry["url"]),
                            title=title if isinstance(title, str) else None,
                            snippet=snippet if isinstance(snippet, str) else None,
                        )
                    )
        return cls(
            source_ref=str(payload.get("source_ref") or "unknown"),
            data=dict(data) if isinstance(data, Mapping) else {},
            url=url if isinstance(url, str) else None,
            links=tuple(links),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceFindings:
    records: tuple[SourceRecord, ...] = ()
    sources: tuple[SourceLink, ...] = ()
    tokens_used: int = 0


@runtime_checkable
class SourceAdapter(Protocol):
    """A research provider; raises on network failure, never returns partial garbage."""

    @property
    def name(self) -> str: ...

    async def search(self, subject: SubjectContext) -> SourceFindings: ...


@runtime_checkable
class AuthoritativeVerifier(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def claim_types(self) -> frozenset[ClaimType]: ...

    async def verify(
        self,
        claim_type: ClaimType,
        subject_name: str,
        context: PersonContext,
    ) -> VerifierResult | None:
        """Look up records for ``subject_name``.

        ``None`` means the service is unavailable; an empty result means it answered
        and found nothing.
        """
        ...
