"""Lookup tables and normalisation helpers for person matching."""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

_NICKNAME_GROUPS: Final[tuple[tuple[str, ...], ...]] = (
    ("william", "will", "bill", "billy", "willy", "liam"),
    ("robert", "rob", "bob", "bobby", "robbie"),
    ("richard", "rick", "dick", "rich", "richie"),
    ("james", "jim", "jimmy", "jamie"),
    ("john", "jack", "johnny", "jon"),
    ("michael", "mike", "mikey", "mick"),
    ("charles", "charlie", "chuck", "chas"),
    ("thomas", "tom", "tommy"),
    ("joseph", "joe", "joey"),
    ("daniel", "dan", "danny"),
    ("david", "dave", "davey"),
    ("edward", "ed", "eddie", "ted", "teddy"),
    ("elizabeth", "liz", "lizzy", "beth", "betsy", "betty"),
    ("margaret", "maggie", "marge", "peggy", "meg"),
    ("patricia", "pat", "patty", "tricia"),
    ("jennifer", "jen", "jenny"),
    ("katherine", "kate", "katie", "kathy", "cathy", "kat"),
    ("alexandra", "alex", "sandy", "sasha"),
    ("anthony", "tony"),
    ("benjamin", "ben", "benny"),
    ("christopher", "chris", "kit"),
    ("douglas", "doug"),
    ("frederick", "fred", "freddy", "fritz"),
    ("gregory", "greg"),
    ("jonathan", "jon", "jonny"),
    ("lawrence", "larry"),
    ("matthew", "matt", "matty"),
    ("nathaniel", "nate", "nat", "nathan"),
    ("nicholas", "nick", "nicky"),
    ("patrick", "pat", "paddy"),
    ("peter", "pete"),
    ("phillip", "phil"),
    ("raymond", "ray"),
    ("samuel", "sam", "sammy"),
    ("stephen", "steve", "stevie"),
    ("theodore", "ted", "teddy", "theo"),
    ("timothy", "tim", "timmy"),
    ("walter", "walt", "wally"),
    ("alexander", "alex", "al", "xander"),
)


def _build_nickname_index() -> MappingProxyType[str, frozenset[int]]:
    index: dict[str, set[int]] = {}
    for group_id, group in enumerate(_NICKNAME_GROUPS):
        for variant in group:
            index.setdefault(variant, set()).add(group_id)
    return MappingProxyType({name: frozenset(groups) for name, groups in index.items()})


# a variant may belong to several groups ("pat", "ted", "jon", "alex")
NICKNAME_GROUPS: Final = _build_nickname_index()

STATE_ABBREVIATIONS: Final = MappingProxyType(
    {
        "alabama": "al",
        "alaska": "ak",
        "arizona": "az",
        "arkansas": "ar",
        "california": "ca",
        "colorado": "co",
        "connecticut": "ct",
        "delaware": "de",
        "florida": "fl",
        "georgia": "ga",
        "hawaii": "hi",
        "idaho": "id",
        "illinois": "il",
        "indiana": "in",
        "iowa": "ia",
        "kansas": "ks",
        "kentucky": "ky",
        "louisiana": "la",
        "maine": "me",
        "maryland": "md",
        "massachusetts": "ma",
        "michigan": "mi",
        "minnesota": "mn",
        "mississippi": "ms",
        "missouri": "mo",
        "montana": "mt",
        "nebraska": "ne",
        "nevada": "nv",
        "new hampshire": "nh",
        "new jersey": "nj",
        "new mexico": "nm",
        "new york": "ny",
        "north carolina": "nc",
        "north dakota": "nd",
        "ohio": "oh",
        "oklahoma": "ok",
        "oregon": "or",
        "pennsylvania": "pa",
        "rhode island": "ri",
        "south carolina": "sc",
        "south dakota": "sd",
        "tennessee": "tn",
        "texas": "tx",
        "utah": "ut",
        "vermont": "vt",
        "virginia": "va",
        "washington": "wa",
        "west virginia": "wv",
        "wisconsin": "wi",
        "wyoming": "wy",
        "district of columbia": "dc",
    }
)
_KNOWN_ABBREVIATIONS: Final = frozenset(STATE_ABBREVIATIONS.values())

COMMON_FIRST_NAMES: Final = frozenset(
    {
        "john",
        "james",
        "robert",
        "michael",
        "david",
        "william",
        "richard",
        "mary",
        "patricia",
        "jennifer",
        "linda",
        "elizabeth",
        "barbara",
        "susan",
    }
)
COMMON_LAST_NAMES: Final = frozenset(
    {
        "smith",
        "johnson",
        "williams",
        "brown",
        "jones",
        "garcia",
        "miller",
        "davis",
        "rodriguez",
        "martinez",
        "hernandez",
        "lopez",
        "wilson",
        "anderson",
    }
)

EXECUTIVE_KEYWORDS: Final = (
    "ceo",
    "cfo",
    "coo",
    "cto",
    "president",
    "chairman",
    "founder",
    "director",
    "vp",
    "vice president",
    "chief",
    "owner",
    "partner",
)

_NON_LETTERS = re.compile(r"[^a-z\s]")
_WHITESPACE = re.compile(r"\s+")
_NAME_SUFFIXES: Final = frozenset({"jr", "sr", "ii", "iii", "iv", "md", "phd", "esq"})
_COMPANY_SUFFIXES = re.compile(
    r"\b(inc|llc|ltd|corp|co|company|corporation|incorporated|limited)\b\.?"
)
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


@dataclass(slots=True, frozen=True)
class ParsedName:
    first: str
    last: str
    middle: str = ""


def normalize_name(name: str) -> str:
    return _WHITESPACE.sub(" ", _NON_LETTERS.sub("", name.lower())).strip()


def parse_name(full_name: str) -> ParsedName:
    """Split a full name into first, middle and last, ignoring generational suffixes."""

    parts = [part for part in normalize_name(full_name).split(" ") if part]
    while len(parts) > 2 and parts[-1] in _NAME_SUFFIXES:
        parts.pop()
    if not parts:
        return ParsedName("", "")
    if len(parts) == 1:
        return ParsedName(parts[0], "")
    return ParsedName(parts[0], parts[-1], " ".join(parts[1:-1]))


def are_nicknames(first: str, second: str) -> bool:
    return bool(NICKNAME_GROUPS.get(first, frozenset()) & NICKNAME_GROUPS.get(second, frozenset()))


def normalize_state(state: str | None) -> str | None:
    if not state:
        return None
    normalized = _WHITESPACE.sub(" ", state.lower()).strip()
    if normalized in _KNOWN_ABBREVIATIONS:
        return normalized
    return STATE_ABBREVIATIONS.get(normalized)


def normalize_company(name: str) -> str:
    stripped = _COMPANY_SUFFIXES.sub("", name.lower())
    return _WHITESPACE.sub(" ", _NON_ALNUM.sub("", stripped)).strip()


def levenshtein_similarity(first: str, second: str) -> float:
    """``1 - distance / longest`` with the usual insert/delete/substitute edit distance."""

    if first == second:
        return 1.0
    if not first or not second:
        return 0.0
    previous = list(range(len(second) + 1))
    for i, left in enumerate(first, start=1):
        current = [i]
        for j, right in enumerate(second, start=1):
            cost = 0 if left == right else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return 1.0 - previous[-1] / max(len(first), len(second))


def is_common_name(name: str) -> bool:
    parsed = parse_name(name)
    return parsed.first in COMMON_FIRST_NAMES and parsed.last in COMMON_LAST_NAMES
