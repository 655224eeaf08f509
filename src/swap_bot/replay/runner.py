"""Replay recorded prices through the real controller on a simulated clock."""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

from swap_bot.config import Settings
from swap_bot.controller import TradingLoopController
from swap_bot.exec.errors import PriceFeedError
from swap_bot.exec.paper import PaperSwapExecutor
from swap_bot.factory import build_strategy
from swap_bot.journal.store import JournalStore
from swap_bot.risk.circuit import CircuitBreaker
from swap_bot.risk.rules import RiskManager
from swap_bot.types import PricePoint, PriceQuote, TradeRecord
from swap_bot.utils.clock import ManualClock
from swap_bot.utils.logging import get_logger

REPLAY_CONFIDENCE = 100.0


class ReplayPriceFeed:
    """Serves recorded prices in order and moves the clock to each sample."""

    def __init__(self, points: Sequence[PricePoint], clock: ManualClock) -> None:
        self._points = list(points)
        self._clock = clock
        self._index = 0
        self.last_price: float | None = None

    @property
    def remaining(self) -> int:
        return len(self._points) - self._index

    def get_price(self, pair_id: str) -> PriceQuote:
        if self._index >= len(self._points):
            raise PriceFeedError("replay_exhausted")
        point = self._points[self._index]
        self._index += 1
        self._clock.set(point.timestamp_ms)
        self.last_price = point.price
        return PriceQuote(price=point.price, confidence=REPLAY_CONFIDENCE, timestamp_ms=point.timestamp_ms)

    def current_price(self) -> float | None:
        return self.last_price


@dataclass(slots=True)
class ReplaySummary:
    ticks: int
    buys: int
    sells: int
    win_rate: float | None
    realized_pnl_usd: float
    max_drawdown_pct: float
    start_value: float
    final_value: float
    statuses: dict[str, int] = field(default_factory=dict)
    trades: list[TradeRecord] = field(default_factory=list)
    equity_curve: list[tuple[int, float]] = field(default_factory=list)

    @property
    def total_return_pct(self) -> float:
        if self.start_value <= 0:
            return 0.0
        return (self.final_value / self.start_value - 1.0) * 100

    def metrics(self) -> dict[str, float | int | None]:
        return {
            "ticks": self.ticks,
            "buys": self.buys,
            "sells": self.sells,
            "win_rate": self.win_rate,
            "realized_pnl_usd": self.realized_pnl_usd,
            "max_drawdown_pct": self.max_drawdown_pct,
            "start_value": self.start_value,
            "final_value": self.final_value,
            "total_return_pct": self.total_return_pct,
        }


def run_replay(
    settings: Settings,
    prices: Sequence[PricePoint],
    *,
    journal_dir: Path | None = None,
) -> ReplaySummary:
    """Drive one controller tick per recorded price with a fresh paper wallet."""
    if not prices:
        raise ValueError("replay_requires_prices")
    logger = get_logger("swap_bot.replay")
    clock = ManualClock(prices[0].timestamp_ms)
    feed = ReplayPriceFeed(prices, clock)
    wallet = PaperSwapExecutor(
        None,
        price_source=feed.current_price,
        slippage_bps=settings.paper_slippage_bps,
        initial_base=settings.paper_base_balance,
        initial_quote=settings.paper_quote_balance,
    )
    controller = TradingLoopController(
        strategy=build_strategy(settings, clock),
        risk=RiskManager(settings.risk_parameters(), clock),
        breaker=CircuitBreaker(settings.circuit_breaker_config(), clock),
        feed=feed,
        executor=wallet,
        wallet=wallet,
        config=settings.loop_config(),
        clock=clock,
        journal=JournalStore(journal_dir, clock) if journal_dir is not None else None,
    )

    start_value = settings.paper_quote_balance + settings.paper_base_balance * prices[0].price
    statuses: Counter[str] = Counter()
    trades: list[TradeRecord] = []
    equity_curve: list[tuple[int, float]] = []
    while feed.remaining > 0:
        result = controller.run_iteration()
        statuses[result.status] += 1
        if result.trade is not None:
            trades.append(result.trade)
        equity_curve.append((clock.now_ms(), wallet.get_balance()))

    closed = [t for t in trades if t.side == "sell"]
    wins = sum(1 for t in closed if t.pnl_pct > 0)
    summary = ReplaySummary(
        ticks=len(prices),
        buys=sum(1 for t in trades if t.side == "buy"),
        sells=len(closed),
        win_rate=wins / len(closed) if closed else None,
        realized_pnl_usd=sum(t.pnl_usd for t in closed),
        max_drawdown_pct=_max_drawdown_pct([value for _, value in equity_curve]),
        start_value=start_value,
        final_value=equity_curve[-1][1] if equity_curve else start_value,
        statuses=dict(statuses),
        trades=trades,
        equity_curve=equity_curve,
    )
    logger.info("replay_completed", **summary.metrics())
    return summary


def write_replay_artifacts(output_dir: Path, summary: ReplaySummary) -> None:
    """Persist trades, equity curve and summary metrics."""
    output_dir.mkdir(parents=True, exist_ok=True)
    pd.DataFrame([asdict(trade) for trade in summary.trades]).to_csv(output_dir / "trades.csv", index=False)
    pd.DataFrame(summary.equity_curve, columns=["timestamp_ms", "portfolio_value"]).to_csv(
        output_dir / "equity_curve.csv",
        index=False,
    )
    payload = {**summary.metrics(), "statuses": summary.statuses}
    (output_dir / "summary.json").write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def _max_drawdown_pct(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    peak = values[0]
    worst = 0.0
    for value in values:
        peak = max(peak, value)
        if peak > 0:
            worst = max(worst, (peak - value) / peak * 100)
    return worst
