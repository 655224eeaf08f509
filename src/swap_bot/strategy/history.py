"""Bounded short-window price history."""

from __future__ import annotations

from collections import deque

from swap_bot.types import PriceChange, PricePoint

DEFAULT_MAX_POINTS = 100


class PriceHistoryBuffer:
    """Recent price samples for one pair, pruned by age and by count."""

    def __init__(self, window_ms: int, max_points: int = DEFAULT_MAX_POINTS) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms_must_be_positive")
        if max_points < 2:
            raise ValueError("max_points_must_be_at_least_2")
        self._window_ms = window_ms
        self._points: deque[PricePoint] = deque(maxlen=max_points)

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @window_ms.setter
    def window_ms(self, value: int) -> None:
        if value <= 0:
            raise ValueError("window_ms_must_be_positive")
        self._window_ms = value

    @property
    def latest(self) -> PricePoint | None:
        return self._points[-1] if self._points else None

    def __len__(self) -> int:
        return len(self._points)

    def points(self) -> list[PricePoint]:
        """Snapshot of retained samples, oldest first."""
        return list(self._points)

    def record(self, price: float, timestamp_ms: int) -> PricePoint:
        """Append a sample and drop everything outside the window."""
        point = PricePoint(price=float(price), timestamp_ms=int(timestamp_ms))
        self._points.append(point)
        cutoff = point.timestamp_ms - self._window_ms
        while self._points and self._points[0].timestamp_ms < cutoff:
            self._points.popleft()
        return point

    def change_over_window(self, window_ms: int, now_ms: int | None = None) -> PriceChange | None:
        """Percent change from the earliest in-window sample to the latest one."""
        if len(self._points) < 2:
            return None
        latest = self._points[-1]
        now = latest.timestamp_ms if now_ms is None else now_ms
        cutoff = now - window_ms

        earliest = next((p for p in self._points if p.timestamp_ms >= cutoff), None)
        if earliest is None or earliest is latest or earliest.price <= 0:
            return None

        percent_change = (latest.price - earliest.price) / earliest.price * 100
        return PriceChange(
            percent_change=percent_change,
            duration_ms=latest.timestamp_ms - earliest.timestamp_ms,
        )
