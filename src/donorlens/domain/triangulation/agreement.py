"""Value agreement between observations from different sources."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from numbers import Real
from typing import Final

DEFAULT_TOLERANCE: Final = 0.2

_WHITESPACE = re.compile(r"\s+")


def is_number(value: object) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _normalize_text(value: str) -> str:
    return _WHITESPACE.sub(" ", value.strip().lower())


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def values_agree(first: object, second: object, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Whether two observed values describe the same fact.

    Numbers agree within a relative ``tolerance`` of the larger magnitude; text is
    compared case- and whitespace-insensitively; sequences agree as multisets of
    agreeing elements; mappings need identical keys with agreeing values.
    """

    if first is None or second is None:
        return first is None and second is None

    if isinstance(first, bool) or isinstance(second, bool):
        return isinstance(first, bool) and isinstance(second, bool) and first == second

    if isinstance(first, Real) and isinstance(second, Real):
        a = float(first)
        b = float(second)
        if a == 0 and b == 0:
            return True
        return abs(a - b) / max(abs(a), abs(b)) <= tolerance

    if isinstance(first, str) and isinstance(second, str):
        return _normalize_text(first) == _normalize_text(second)

    if isinstance(first, Mapping) and isinstance(second, Mapping):
        if set(first) != set(second):
            return False
        return all(values_agree(first[key], second[key], tolerance) for key in first)

    if _is_sequence(first) and _is_sequence(second):
        return _multiset_agree(
            list(first), list(second), tolerance  # pyright: ignore[reportArgumentType]
        )

    return first == second


def _multiset_agree(first: Sequence[object], second: Sequence[object], tolerance: float) -> bool:
    if len(first) != len(second):
        return False
    unmatched = list(second)
    for item in first:
        for index, candidate in enumerate(unmatched):
            if values_agree(item, candidate, tolerance):
                del unmatched[index]
                break
        else:
            return False
    return True
