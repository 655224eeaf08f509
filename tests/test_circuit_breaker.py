from __future__ import annotations

import pytest

from swap_bot.config import CircuitBreakerConfig
from swap_bot.risk.circuit import CircuitBreaker, CircuitOpenError
from swap_bot.types import CircuitState
from swap_bot.utils.clock import ManualClock


class _Operation:
    def __init__(self, *, fail: bool) -> None:
        self.fail = fail
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise ValueError("boom")
        return "ok"


def _breaker(threshold: int = 3, timeout_ms: int = 60_000) -> tuple[CircuitBreaker, ManualClock]:
    clock = ManualClock(1_000)
    config = CircuitBreakerConfig(failure_threshold=threshold, timeout_ms=timeout_ms)
    return CircuitBreaker(config, clock), clock


def test_opens_after_threshold_then_allows_trial() -> None:
    breaker, clock = _breaker()
    failing = _Operation(fail=True)

    for _ in range(3):
        with pytest.raises(ValueError, match="boom"):
            breaker.execute(failing)
    assert breaker.is_open
    assert failing.calls == 3

    clock.advance(1)
    with pytest.raises(CircuitOpenError, match="Circuit breaker is OPEN"):
        breaker.execute(failing)
    assert failing.calls == 3

    clock.advance(60_000)
    healthy = _Operation(fail=False)
    assert breaker.execute(healthy) == "ok"
    assert healthy.calls == 1
    assert breaker.state == CircuitState.CLOSED
    assert breaker.status().consecutive_failures == 0


def test_success_resets_failure_count() -> None:
    breaker, _ = _breaker()
    with pytest.raises(ValueError):
        breaker.execute(_Operation(fail=True))
    with pytest.raises(ValueError):
        breaker.execute(_Operation(fail=True))
    breaker.execute(_Operation(fail=False))

    status = breaker.status()
    assert status.consecutive_failures == 0
    assert not status.is_open


def test_failed_trial_reopens_with_fresh_timer() -> None:
    breaker, clock = _breaker(threshold=2, timeout_ms=10_000)
    failing = _Operation(fail=True)
    for _ in range(2):
        with pytest.raises(ValueError):
            breaker.execute(failing)

    clock.advance(10_001)
    with pytest.raises(ValueError):
        breaker.execute(failing)
    assert failing.calls == 3
    status = breaker.status()
    assert status.state == CircuitState.OPEN
    assert status.consecutive_failures == 2
    assert status.last_failure_timestamp_ms == clock.now_ms()

    clock.advance(5_000)
    with pytest.raises(CircuitOpenError):
        breaker.execute(failing)
    assert failing.calls == 3


def test_open_boundary_is_inclusive() -> None:
    breaker, clock = _breaker(threshold=1, timeout_ms=1_000)
    with pytest.raises(ValueError):
        breaker.execute(_Operation(fail=True))

    clock.advance(1_000)
    with pytest.raises(CircuitOpenError):
        breaker.execute(_Operation(fail=False))


def test_reset_closes_circuit() -> None:
    breaker, _ = _breaker(threshold=1)
    with pytest.raises(ValueError):
        breaker.execute(_Operation(fail=True))
    assert breaker.is_open

    breaker.reset()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.execute(_Operation(fail=False)) == "ok"
