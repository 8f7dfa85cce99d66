from __future__ import annotations

import pytest

from donorlens.domain.triangulation import values_agree


@pytest.mark.parametrize(
    ("first", "second"),
    [
        (1_000_000, 1_150_000),
        (0, 0),
        ("Acme Corp", "  acme   corp "),
        (["Stanford", "MIT"], ["mit", "stanford"]),
        ({"total": 100, "party": "DEM"}, {"total": 110, "party": "dem"}),
        (True, True),
        (None, None),
    ],
)
def test_values_agree(first: object, second: object) -> None:
    assert values_agree(first, second)


@pytest.mark.parametrize(
    ("first", "second"),
    [
        (1_000_000, 1_500_000),
        ("Acme Corp", "Globex"),
        (["Stanford"], ["Stanford", "MIT"]),
        ({"total": 100}, {"amount": 100}),
        (True, 1),
        (None, 0),
    ],
)
def test_values_disagree(first: object, second: object) -> None:
    assert not values_agree(first, second)


def test_tolerance_is_configurable() -> None:
    assert not values_agree(100, 115, tolerance=0.1)
    assert values_agree(100, 115, tolerance=0.2)
