"""Research source backed by a remote search service."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx

from donorlens.adapters.http_resilience import ResilientClient
from donorlens.domain.ports.sources import SourceFindings, SourceRecord
from donorlens.domain.quality import has_minimal_data
from donorlens.domain.resilience import TransientUpstreamError
from donorlens.domain.sources import SourceLink

from .parser import CorrectionReply, ParseFailure, parse_with_correction
from .schema import CorrectionResponse, SearchResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from donorlens.config.http_resilience import ResilienceConfig
    from donorlens.config.remote import RemoteServiceConfig
    from donorlens.domain.subject import SubjectContext

log = getLogger(__name__)

SEARCH_PATH: Final = "search"
CORRECTION_PATH: Final = "correct"
_TRANSIENT_STATUS: Final = frozenset({408, 429, 500, 502, 503, 504})


class RemoteServiceError(RuntimeError):
    """Raised when a remote service rejects a request for a non-transient reason."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def raise_for_service_status(service: str, response: httpx.Response) -> None:
    """Map HTTP errors onto retryable and non-retryable domain errors."""

    if response.is_success:
        return
    message = f"{service} responded with HTTP {response.status_code}"
    if response.status_code in _TRANSIENT_STATUS:
        raise TransientUpstreamError(message, status_code=response.status_code)
    raise RemoteServiceError(message, status_code=response.status_code)


@dataclass(slots=True)
class HttpSourceAdapter:
    """``SourceAdapter`` that POSTs the subject to ``<base_url>/search``.

    The service answers with structured records or with raw model text; text goes
    through the validated parser, which may call back to ``<base_url>/correct``.
    """

    config: RemoteServiceConfig
    max_corrections: int = 2
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    @property
    def name(self) -> str:
        return self.config.service

    async def search(self, subject: SubjectContext) -> SourceFindings:
        async with self.client_factory(self.config.resilience) as client:
            payload = await self._post(client, SEARCH_PATH, {"subject": subject.to_payload()})
            response = SearchResponse.model_validate(payload)
            links = tuple(
                SourceLink(url=link.url, title=link.title, snippet=link.snippet)
                for link in response.sources
            )
            records = [
                SourceRecord(
                    source_ref=record.source_ref or self.name,
                    data=record.data,
                    url=record.url,
                )
                for record in response.records
            ]
            tokens = response.tokens_used

            if response.text is not None:

                async def correct(previous: str, instructions: str) -> CorrectionReply:
                    return await self._correct(client, previous, instructions)

                outcome = await parse_with_correction(
                    response.text, correct=correct, max_corrections=self.max_corrections
                )
                tokens += outcome.tokens_used
                if isinstance(outcome, ParseFailure) and not has_minimal_data(outcome.record):
                    log.warning(
                        "%s returned unusable research for %s after %d attempt(s)",
                        self.name,
                        subject.subject_id,
                        outcome.attempts,
                    )
                else:
                    records.append(SourceRecord(source_ref=self.name, data=outcome.record))

        return SourceFindings(records=tuple(records), sources=links, tokens_used=tokens)

    async def _correct(
        self, client: ResilientClient, previous: str, instructions: str
    ) -> CorrectionReply:
        try:
            payload = await self._post(
                client, CORRECTION_PATH, {"text": previous, "instructions": instructions}
            )
        except (TransientUpstreamError, RemoteServiceError) as exc:
            # the parser falls back to the lenient record on the next round
            log.warning("%s correction request failed: %s", self.name, exc)
            return CorrectionReply(text=previous)
        reply = CorrectionResponse.model_validate(payload)
        return CorrectionReply(text=reply.text, tokens_used=reply.tokens_used)

    async def _post(self, client: ResilientClient, path: str, body: object) -> object:
        try:
            response = await client.post(
                path,
                json=body,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"{self.name} request failed: {exc}") from exc
        raise_for_service_status(self.name, response)
        return response.json()
