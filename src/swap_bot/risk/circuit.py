"""Circuit breaker guarding fallible operations such as swap submission."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from swap_bot.config import CircuitBreakerConfig
from swap_bot.types import CircuitBreakerState, CircuitState
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger

T = TypeVar("T")


class CircuitOpenError(RuntimeError):
    """Raised without invoking the operation while the circuit is open."""

    def __init__(self, message: str = "Circuit breaker is OPEN - operations suspended") -> None:
        super().__init__(message)


class CircuitBreaker:
    """Opens after N consecutive failures, then allows one trial after a timeout."""

    def __init__(self, config: CircuitBreakerConfig, clock: Clock, name: str = "swap") -> None:
        self._config = config
        self._clock = clock
        self._name = name
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_ms = 0
        self._logger = get_logger("swap_bot.risk.circuit").bind(circuit=name)

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def execute(self, operation: Callable[[], T]) -> T:
        """Run `operation` under the breaker. The original error is re-raised."""
        if self._state == CircuitState.OPEN:
            elapsed = self._clock.now_ms() - self._last_failure_ms
            if elapsed <= self._config.timeout_ms:
                raise CircuitOpenError()
            self._state = CircuitState.HALF_OPEN
            self._logger.info("circuit_half_open", elapsed_ms=elapsed)

        try:
            result = operation()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def status(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            state=self._state,
            is_open=self.is_open,
            consecutive_failures=self._failures,
            last_failure_timestamp_ms=self._last_failure_ms,
        )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_ms = 0
        self._logger.info("circuit_reset")

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._logger.info("circuit_closed", after="trial_success")
        self._state = CircuitState.CLOSED
        self._failures = 0

    def _on_failure(self) -> None:
        self._last_failure_ms = self._clock.now_ms()
        if self._state == CircuitState.HALF_OPEN:
            self._failures = self._config.failure_threshold
        else:
            self._failures += 1
        if self._failures >= self._config.failure_threshold:
            self._state = CircuitState.OPEN
            self._logger.error(
                "circuit_opened",
                consecutive_failures=self._failures,
                timeout_ms=self._config.timeout_ms,
            )
