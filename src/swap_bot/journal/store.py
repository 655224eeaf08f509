"""JSONL journal store for trading loop events."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from swap_bot.utils.clock import Clock, SystemClock

_ALLOWED_EVENT_TYPES = {
    "loop_start",
    "price",
    "signal",
    "risk_check",
    "swap",
    "trade",
    "emergency_stop",
    "error",
    "loop_stop",
}


class JournalStore:
    """Append-only JSONL event store, one file per UTC day of the clock."""

    def __init__(self, journal_dir: Path, clock: Clock | None = None) -> None:
        self._journal_dir = journal_dir
        self._clock = clock or SystemClock()
        self._journal_dir.mkdir(parents=True, exist_ok=True)

    def append(self, event_type: str, payload: dict[str, Any]) -> None:
        """Append one event line to the daily JSONL file."""
        if event_type not in _ALLOWED_EVENT_TYPES:
            raise ValueError(f"unsupported_event_type: {event_type}")
        now = datetime.fromtimestamp(self._clock.now_ms() / 1000, tz=timezone.utc)
        record = {
            "timestamp": now.isoformat(),
            "event_type": event_type,
            "payload": payload,
        }
        file_path = self._file_path_for_day(now.date())
        with file_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=True, default=str) + "\n")

    def load_recent(self, limit: int) -> list[dict[str, Any]]:
        """Load the most recent events, oldest first."""
        if limit <= 0:
            return []

        rows: list[dict[str, Any]] = []
        for file in sorted(self._journal_dir.glob("*.jsonl"), reverse=True):
            lines = file.read_text(encoding="utf-8").splitlines()
            for line in reversed(lines):
                if not line.strip():
                    continue
                rows.append(json.loads(line))
                if len(rows) >= limit:
                    return list(reversed(rows))
        return list(reversed(rows))

    def _file_path_for_day(self, day: date) -> Path:
        return self._journal_dir / f"{day.isoformat()}.jsonl"
