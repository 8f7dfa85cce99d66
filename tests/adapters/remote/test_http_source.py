from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import httpx
import pytest

from donorlens.adapters.remote import HttpSourceAdapter, RemoteServiceError
from donorlens.domain.resilience import TransientUpstreamError
from donorlens.domain.sources import SourceLink
from donorlens.domain.subject import SubjectContext
from tests.support.remote import VALID_RECORD, make_client_factory, service_config

if TYPE_CHECKING:
    from tests.support.remote import Handler

SUBJECT = SubjectContext(subject_id="subject-1", name="Jane Doe", city="Portland", state="OR")


def _adapter(handler: Handler) -> HttpSourceAdapter:
    return HttpSourceAdapter(
        config=service_config("perplexity"), client_factory=make_client_factory(handler)
    )


def test_structured_records_are_returned_as_is() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "records": [{"data": {"background": {"age": 61}}, "url": "https://x.test/a"}],
                "sources": [{"url": "https://fec.gov/jane", "title": "FEC"}],
                "tokens_used": 42,
            },
        )

    findings = asyncio.run(_adapter(handler).search(SUBJECT))

    assert [record.source_ref for record in findings.records] == ["perplexity"]
    assert findings.records[0].data == {"background": {"age": 61}}
    assert findings.records[0].url == "https://x.test/a"
    assert findings.sources == (SourceLink(url="https://fec.gov/jane", title="FEC"),)
    assert findings.tokens_used == 42
    request = seen[0]
    assert request.method == "POST"
    assert request.url == "https://records.test/search"
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert json.loads(request.content) == {
        "subject": {
            "subject_id": "subject-1",
            "name": "Jane Doe",
            "city": "Portland",
            "state": "OR",
        }
    }


def test_model_text_is_parsed_into_a_record() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        text = f"```json\n{json.dumps(VALID_RECORD)}\n```"
        return httpx.Response(200, json={"text": text, "tokens_used": 900})

    findings = asyncio.run(_adapter(handler).search(SUBJECT))

    assert len(findings.records) == 1
    record = findings.records[0]
    assert record.source_ref == "perplexity"
    assert record.data["executive_summary"] == VALID_RECORD["executive_summary"]
    assert findings.tokens_used == 900


def test_invalid_text_goes_through_the_correction_endpoint() -> None:
    paths: list[str] = []
    broken = json.loads(json.dumps(VALID_RECORD))
    broken["metrics"]["capacity_rating"] = "HUGE"

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/correct":
            body = json.loads(request.content)
            assert "capacity_rating" in body["instructions"]
            return httpx.Response(200, json={"text": json.dumps(VALID_RECORD), "tokens_used": 50})
        return httpx.Response(200, json={"text": json.dumps(broken), "tokens_used": 900})

    findings = asyncio.run(_adapter(handler).search(SUBJECT))

    assert paths == ["/search", "/correct"]
    metrics = findings.records[0].data["metrics"]
    assert isinstance(metrics, dict)
    assert metrics["capacity_rating"] == "MAJOR"
    assert findings.tokens_used == 950


def test_unusable_text_yields_no_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/correct":
            return httpx.Response(503)
        return httpx.Response(200, json={"text": "No public information was found."})

    findings = asyncio.run(_adapter(handler).search(SUBJECT))

    assert findings.records == ()


@pytest.mark.parametrize(
    ("status_code", "error"),
    [(429, TransientUpstreamError), (503, TransientUpstreamError), (401, RemoteServiceError)],
)
def test_error_status_codes(status_code: int, error: type[Exception]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(status_code)

    with pytest.raises(error, match=f"HTTP {status_code}"):
        asyncio.run(_adapter(handler).search(SUBJECT))


def test_network_errors_are_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientUpstreamError, match="request failed"):
        asyncio.run(_adapter(handler).search(SUBJECT))
