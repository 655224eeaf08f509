from __future__ import annotations

from pathlib import Path

import pytest

from swap_bot.journal.store import JournalStore
from swap_bot.utils.clock import ManualClock

_DAY_MS = 86_400_000


def test_events_are_stamped_with_the_injected_clock(tmp_path: Path) -> None:
    clock = ManualClock(3 * _DAY_MS)
    journal = JournalStore(tmp_path / "journal", clock)

    journal.append("price", {"price": 100.0})

    assert (tmp_path / "journal" / "1970-01-04.jsonl").exists()
    rows = journal.load_recent(10)
    assert rows[0]["timestamp"] == "1970-01-04T00:00:00+00:00"
    assert rows[0]["payload"] == {"price": 100.0}


def test_day_files_follow_clock_and_load_in_order(tmp_path: Path) -> None:
    clock = ManualClock(0)
    journal = JournalStore(tmp_path, clock)
    journal.append("loop_start", {"n": 1})
    clock.advance(_DAY_MS)
    journal.append("price", {"n": 2})
    journal.append("loop_stop", {"n": 3})

    assert sorted(p.name for p in tmp_path.glob("*.jsonl")) == ["1970-01-01.jsonl", "1970-01-02.jsonl"]
    assert [row["payload"]["n"] for row in journal.load_recent(10)] == [1, 2, 3]
    assert [row["payload"]["n"] for row in journal.load_recent(2)] == [2, 3]
    assert journal.load_recent(0) == []


def test_unknown_event_type_is_rejected(tmp_path: Path) -> None:
    journal = JournalStore(tmp_path, ManualClock(0))
    with pytest.raises(ValueError, match="unsupported_event_type"):
        journal.append("chat", {})
