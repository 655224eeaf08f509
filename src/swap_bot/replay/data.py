"""Price history loading for replays."""

from __future__ import annotations

from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

from swap_bot.types import PricePoint

_REQUIRED_COLUMNS = ["timestamp", "price"]
_EPOCH = pd.Timestamp(0, tz="UTC")


def load_price_csv(path: Path) -> list[PricePoint]:
    """Load `timestamp,price` rows. Timestamps are ISO-8601 or epoch milliseconds."""
    df = pd.read_csv(path)
    return normalize_prices(df)


def normalize_prices(df: pd.DataFrame) -> list[PricePoint]:
    """Validate, clean and sort a price frame into price points."""
    missing = [col for col in _REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"missing_price_columns: {','.join(missing)}")

    normalized = df[_REQUIRED_COLUMNS].copy()
    if pd.api.types.is_numeric_dtype(normalized["timestamp"]):
        normalized["timestamp"] = pd.to_datetime(normalized["timestamp"], unit="ms", utc=True)
    else:
        normalized["timestamp"] = pd.to_datetime(normalized["timestamp"], utc=True, errors="coerce")
    normalized["price"] = pd.to_numeric(normalized["price"], errors="coerce")

    normalized = normalized.dropna(subset=_REQUIRED_COLUMNS)
    normalized = normalized[normalized["price"] > 0]
    normalized = normalized.sort_values("timestamp").reset_index(drop=True)
    if normalized.empty:
        raise ValueError("normalized_prices_empty")

    millis = (normalized["timestamp"] - _EPOCH) // pd.Timedelta(milliseconds=1)
    return [
        PricePoint(price=float(price), timestamp_ms=int(ts))
        for ts, price in zip(millis, normalized["price"])
    ]
