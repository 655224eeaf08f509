from __future__ import annotations

import pytest

from swap_bot.strategy.history import PriceHistoryBuffer


def test_change_over_window_reports_drop() -> None:
    buffer = PriceHistoryBuffer(window_ms=120_000)
    buffer.record(100.0, 0)
    buffer.record(98.8, 60_000)

    change = buffer.change_over_window(120_000)

    assert change is not None
    assert change.percent_change == pytest.approx(-1.2)
    assert change.duration_ms == 60_000


def test_record_prunes_samples_outside_window() -> None:
    buffer = PriceHistoryBuffer(window_ms=120_000)
    buffer.record(100.0, 0)
    buffer.record(101.0, 50_000)
    buffer.record(102.0, 200_000)

    points = buffer.points()
    assert [p.timestamp_ms for p in points] == [200_000]
    assert buffer.change_over_window(120_000) is None


def test_buffer_never_exceeds_max_points() -> None:
    buffer = PriceHistoryBuffer(window_ms=10**9, max_points=5)
    for i in range(12):
        buffer.record(100.0 + i, i)
        assert len(buffer) <= 5

    assert [p.timestamp_ms for p in buffer.points()] == [7, 8, 9, 10, 11]
    assert buffer.latest is not None
    assert buffer.latest.price == 111.0


def test_change_uses_earliest_sample_inside_requested_window() -> None:
    buffer = PriceHistoryBuffer(window_ms=600_000)
    buffer.record(100.0, 0)
    buffer.record(101.0, 100_000)
    buffer.record(102.0, 130_000)

    change = buffer.change_over_window(60_000, now_ms=130_000)

    assert change is not None
    assert change.percent_change == pytest.approx((102.0 - 101.0) / 101.0 * 100)
    assert change.duration_ms == 30_000


def test_change_needs_two_samples() -> None:
    buffer = PriceHistoryBuffer(window_ms=120_000)
    assert buffer.change_over_window(120_000) is None
    buffer.record(100.0, 0)
    assert buffer.change_over_window(120_000) is None


def test_invalid_window_rejected() -> None:
    with pytest.raises(ValueError):
        PriceHistoryBuffer(window_ms=0)
    with pytest.raises(ValueError):
        PriceHistoryBuffer(window_ms=1000, max_points=1)
