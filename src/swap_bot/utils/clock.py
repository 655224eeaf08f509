"""Injectable time sources for the trading loop."""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Time source used by every time-dependent component."""

    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        """Wait for `seconds`, returning early once `cancel` is set."""


class SystemClock:
    """Wall clock. Sleeping waits on the cancel event so stop requests wake it."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        if seconds <= 0:
            return
        if cancel is None:
            time.sleep(seconds)
            return
        cancel.wait(seconds)


class ManualClock:
    """Deterministic clock for tests and replays. Sleeping advances time."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now_ms = int(start_ms)
        self.sleeps: list[float] = []

    def now_ms(self) -> int:
        return self._now_ms

    def set(self, timestamp_ms: int) -> None:
        self._now_ms = int(timestamp_ms)

    def advance(self, ms: int) -> None:
        self._now_ms += int(ms)

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        self.sleeps.append(seconds)
        self._now_ms += int(seconds * 1000)
