from __future__ import annotations

import asyncio

import pytest

from donorlens.domain.resilience import (
    BreakerSettings,
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from tests.support.fakes import FakeClock


def _breaker(clock: FakeClock, **overrides: float) -> CircuitBreaker:
    settings = BreakerSettings(
        name="primary_research",
        failure_threshold=int(overrides.get("failure_threshold", 3)),
        success_threshold=int(overrides.get("success_threshold", 2)),
        timeout_seconds=overrides.get("timeout_seconds", 60.0),
    )
    return CircuitBreaker(settings, clock=clock)


async def _ok() -> str:
    return "ok"


async def _boom() -> str:
    raise RuntimeError("upstream exploded")


def test_breaker_opens_after_consecutive_failures(clock: FakeClock) -> None:
    breaker = _breaker(clock)

    breaker.record_failure()
    breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED

    breaker.record_failure()

    assert breaker.state is CircuitState.OPEN
    assert breaker.is_open()
    assert not breaker.can_attempt()


def test_success_resets_the_failure_streak(clock: FakeClock) -> None:
    breaker = _breaker(clock)

    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    breaker.record_failure()

    assert breaker.state is CircuitState.CLOSED


def test_open_breaker_moves_to_half_open_after_timeout(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1, timeout_seconds=30.0)
    breaker.record_failure()

    clock.advance(29.5)
    assert not breaker.can_attempt()
    assert breaker.time_until_close() == pytest.approx(0.5)

    clock.advance(0.5)
    assert breaker.can_attempt()
    assert breaker.state is CircuitState.HALF_OPEN


def test_half_open_closes_after_success_threshold(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1, success_threshold=2, timeout_seconds=10.0)
    breaker.record_failure()
    clock.advance(10)
    assert breaker.can_attempt()

    breaker.record_success()
    assert breaker.state is CircuitState.HALF_OPEN
    breaker.record_success()

    assert breaker.state is CircuitState.CLOSED
    assert breaker.stats().consecutive_failures == 0


def test_failure_while_half_open_reopens(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=2, timeout_seconds=10.0)
    breaker.record_failure()
    breaker.record_failure()
    clock.advance(10)
    assert breaker.can_attempt()

    breaker.record_failure()

    assert breaker.state is CircuitState.OPEN
    assert breaker.time_until_close() == pytest.approx(10.0)


def test_execute_rejects_without_calling_when_open(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1)
    breaker.force_open()
    calls: list[str] = []

    async def tracked() -> str:
        calls.append("called")
        return "ok"

    with pytest.raises(CircuitOpenError) as exc:
        asyncio.run(breaker.execute(tracked))

    assert calls == []
    assert exc.value.service_name == "primary_research"
    assert exc.value.retry_after_seconds == pytest.approx(60.0)
    assert breaker.stats().total_rejections == 1


def test_execute_records_outcomes_and_reraises(clock: FakeClock) -> None:
    breaker = _breaker(clock)

    assert asyncio.run(breaker.execute(_ok)) == "ok"
    with pytest.raises(RuntimeError, match="upstream exploded"):
        asyncio.run(breaker.execute(_boom))

    stats = breaker.stats()
    assert stats.total_calls == 2
    assert stats.total_successes == 1
    assert stats.total_failures == 1
    assert stats.consecutive_failures == 1


def test_state_change_listeners_are_notified(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1, success_threshold=1, timeout_seconds=5.0)
    transitions: list[tuple[str, CircuitState, CircuitState]] = []
    breaker.on_state_change(lambda name, old, new: transitions.append((name, old, new)))

    breaker.record_failure()
    clock.advance(5)
    breaker.can_attempt()
    breaker.record_success()

    assert transitions == [
        ("primary_research", CircuitState.CLOSED, CircuitState.OPEN),
        ("primary_research", CircuitState.OPEN, CircuitState.HALF_OPEN),
        ("primary_research", CircuitState.HALF_OPEN, CircuitState.CLOSED),
    ]


def test_failing_listener_does_not_break_the_breaker(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1)

    def broken(name: str, old: CircuitState, new: CircuitState) -> None:
        del name, old, new
        raise ValueError("listener bug")

    breaker.on_state_change(broken)
    breaker.record_failure()

    assert breaker.state is CircuitState.OPEN


def test_reset_closes_and_clears_counters(clock: FakeClock) -> None:
    breaker = _breaker(clock, failure_threshold=1)
    breaker.record_failure()

    breaker.reset()

    stats = breaker.stats()
    assert stats.state is CircuitState.CLOSED
    assert stats.consecutive_failures == 0
    assert stats.opened_at is None
    assert breaker.time_until_close() == 0.0


@pytest.mark.parametrize(
    ("failure_threshold", "success_threshold", "timeout_seconds"),
    [(0, 1, 1.0), (1, 0, 1.0), (1, 1, -1.0)],
)
def test_breaker_settings_reject_invalid_values(
    failure_threshold: int, success_threshold: int, timeout_seconds: float
) -> None:
    with pytest.raises(ValueError, match="Breaker"):
        BreakerSettings(
            name="x",
            failure_threshold=failure_threshold,
            success_threshold=success_threshold,
            timeout_seconds=timeout_seconds,
        )
