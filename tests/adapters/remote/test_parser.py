from __future__ import annotations

import asyncio
import json

from donorlens.adapters.remote import (
    CorrectionReply,
    ParseFailure,
    ParseSuccess,
    clean_json,
    extract_json,
    parse_with_correction,
)
from donorlens.adapters.remote.schema import UNSTRUCTURED_SUMMARY
from tests.support.remote import VALID_RECORD


def test_extract_json_from_fenced_block() -> None:
    response = 'Here is the research:\n```json\n{"a": 1}\n```\nLet me know.'

    assert extract_json(response) == {"a": 1}


def test_extract_json_from_surrounding_prose() -> None:
    assert extract_json('Result: {"a": [1, 2]} (end)') == {"a": [1, 2]}
    assert extract_json("no structured data here") is None


def test_clean_json_repairs_common_mistakes() -> None:
    assert json.loads(clean_json("{a: 'x', b: [1,2,],}")) == {"a": "x", "b": [1, 2]}


def test_valid_record_parses_on_first_attempt() -> None:
    outcome = asyncio.run(parse_with_correction(json.dumps(VALID_RECORD)))

    assert isinstance(outcome, ParseSuccess)
    assert outcome.attempts == 1
    assert outcome.record["metrics"]["romy_score"] == 31
    assert outcome.record["wealth"]["business_ownership"][0]["estimated_value"] is None


def test_invalid_record_is_corrected() -> None:
    broken = json.loads(json.dumps(VALID_RECORD))
    broken["metrics"]["romy_score"] = 99
    prompts: list[str] = []

    async def correct(previous: str, instructions: str) -> CorrectionReply:
        del previous
        prompts.append(instructions)
        return CorrectionReply(text=json.dumps(VALID_RECORD), tokens_used=300)

    outcome = asyncio.run(parse_with_correction(json.dumps(broken), correct=correct))

    assert isinstance(outcome, ParseSuccess)
    assert outcome.attempts == 2
    assert outcome.tokens_used == 300
    assert len(prompts) == 1
    assert "metrics.romy_score" in prompts[0]
    assert "(maximum: 41)" in prompts[0]


def test_unparseable_text_without_corrector_falls_back_to_lenient_record() -> None:
    outcome = asyncio.run(parse_with_correction("I could not find this person."))

    assert isinstance(outcome, ParseFailure)
    assert outcome.attempts == 1
    assert outcome.errors == ("Attempt 1: Could not extract valid JSON from response",)
    assert outcome.record["executive_summary"] == UNSTRUCTURED_SUMMARY
    assert outcome.record["metrics"]["capacity_rating"] == "ANNUAL"


def test_correction_rounds_are_bounded() -> None:
    calls: list[str] = []

    async def correct(previous: str, instructions: str) -> CorrectionReply:
        calls.append(instructions)
        return CorrectionReply(text=previous, tokens_used=10)

    outcome = asyncio.run(
        parse_with_correction('{"metrics": {"romy_score": 5}}', correct=correct, max_corrections=2)
    )

    assert isinstance(outcome, ParseFailure)
    assert outcome.attempts == 3
    assert len(outcome.errors) == 3
    assert len(calls) == 2
    assert outcome.tokens_used == 20
    assert outcome.record["metrics"]["romy_score"] == 5
