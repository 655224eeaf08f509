"""Replay package exports."""

from swap_bot.replay.data import load_price_csv, normalize_prices
from swap_bot.replay.runner import ReplayPriceFeed, ReplaySummary, run_replay, write_replay_artifacts

__all__ = [
    "ReplayPriceFeed",
    "ReplaySummary",
    "load_price_csv",
    "normalize_prices",
    "run_replay",
    "write_replay_artifacts",
]
