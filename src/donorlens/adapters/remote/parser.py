"""Validated parsing of model-generated prospect records.

Model output is pulled out of whatever wrapping it arrived in, checked against the
strict ``ProspectRecord`` schema, and on failure sent back with the validation errors
for a bounded number of correction rounds. When the rounds run out the lenient schema
supplies a complete record with defaults, so callers always get something usable.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from .schema import ProspectRecord, correction_prompt, lenient_record

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = getLogger(__name__)

DEFAULT_MAX_CORRECTIONS = 2
JSON_ONLY_INSTRUCTIONS = (
    "Response was not valid JSON. "
    "Please return ONLY a valid JSON object matching the required schema."
)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_UNQUOTED_KEY = re.compile(r"([{,]\s*)(\w+)(\s*:)")
_SINGLE_QUOTED_VALUE = re.compile(r":(\s*)'([^']*)'")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass(slots=True, frozen=True)
class CorrectionReply:
    text: str
    tokens_used: int = 0


type Corrector = Callable[[str, str], Awaitable[CorrectionReply]]


@dataclass(slots=True, frozen=True, kw_only=True)
class ParseSuccess:
    record: dict[str, Any]
    attempts: int
    tokens_used: int = 0
    kind: Literal["success"] = "success"


@dataclass(slots=True, frozen=True, kw_only=True)
class ParseFailure:
    """Correction rounds exhausted; ``record`` is the lenient best effort."""

    record: dict[str, Any]
    attempts: int
    errors: tuple[str, ...]
    tokens_used: int = 0
    kind: Literal["failure"] = "failure"


type ParseOutcome = ParseSuccess | ParseFailure


def clean_json(text: str) -> str:
    """Repair the usual hand-written JSON mistakes: trailing commas, bare keys, single quotes."""

    cleaned = _TRAILING_COMMA.sub(r"\1", text)
    cleaned = _UNQUOTED_KEY.sub(r'\1"\2"\3', cleaned)
    cleaned = _SINGLE_QUOTED_VALUE.sub(r':\1"\2"', cleaned)
    return _CONTROL_CHARS.sub("", cleaned)


def _loads(candidate: str) -> object | None:
    for text in (candidate, clean_json(candidate)):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            continue
    return None


def _between(text: str, opening: str, closing: str) -> str | None:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(response: str) -> object | None:
    """Find JSON in a model response: bare, in a fenced block, or the outermost object/array."""

    trimmed = response.strip()
    candidates = [trimmed]
    fenced = _FENCED_BLOCK.search(trimmed)
    if fenced:
        candidates.append(fenced.group(1).strip())
    for opening, closing in (("{", "}"), ("[", "]")):
        span = _between(trimmed, opening, closing)
        if span is not None:
            candidates.append(span)

    for candidate in candidates:
        parsed = _loads(candidate)
        if parsed is not None:
            return parsed
    return None


def _issues(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}"
        for issue in error.errors()
    )


async def parse_with_correction(
    response: str,
    *,
    correct: Corrector | None = None,
    max_corrections: int = DEFAULT_MAX_CORRECTIONS,
) -> ParseOutcome:
    tokens = 0
    errors: list[str] = []
    current = response
    extracted: object | None = None

    for attempt in range(1, max_corrections + 2):
        extracted = extract_json(current)
        if extracted is None:
            errors.append(f"Attempt {attempt}: Could not extract valid JSON from response")
            instructions = JSON_ONLY_INSTRUCTIONS
        else:
            try:
                record = ProspectRecord.model_validate(extracted)
            except ValidationError as exc:
                errors.append(f"Attempt {attempt}: {_issues(exc)}")
                instructions = correction_prompt(exc)
            else:
                log.debug("Prospect record validated on attempt %d", attempt)
                return ParseSuccess(
                    record=record.model_dump(mode="json"), attempts=attempt, tokens_used=tokens
                )

        log.warning(errors[-1])
        if correct is None or attempt > max_corrections:
            return ParseFailure(
                record=lenient_record(extracted if extracted is not None else {}),
                attempts=attempt,
                errors=tuple(errors),
                tokens_used=tokens,
            )
        reply = await correct(current, instructions)
        current = reply.text
        tokens += reply.tokens_used

    raise AssertionError("unreachable")  # pragma: no cover
