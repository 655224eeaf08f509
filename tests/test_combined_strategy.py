from __future__ import annotations

from swap_bot.config import MeanReversionConfig, Settings, StrategyKind, ThresholdConfig
from swap_bot.factory import build_strategy
from swap_bot.strategy.combined import CombinedStrategy
from swap_bot.strategy.mean_reversion import MeanReversionStrategy
from swap_bot.strategy.thresholds import ThresholdStrategy
from swap_bot.types import PositionState, PricePoint, TradeSignal
from swap_bot.utils.clock import ManualClock


def _combined(clock: ManualClock, buy_below: float, sell_above: float) -> CombinedStrategy:
    return CombinedStrategy(
        MeanReversionStrategy(MeanReversionConfig(), clock),
        ThresholdStrategy(ThresholdConfig(buy_below=buy_below, sell_above=sell_above), clock),
    )


def _tick(strategy: CombinedStrategy, clock: ManualClock, price: float, at_ms: int) -> TradeSignal:
    clock.set(at_ms)
    return strategy.analyze(PricePoint(price=price, timestamp_ms=at_ms))


def test_confident_mean_reversion_signal_wins() -> None:
    clock = ManualClock(0)
    strategy = _combined(clock, 90.0, 110.0)

    assert _tick(strategy, clock, 100.0, 0).type == "none"
    signal = _tick(strategy, clock, 97.0, 60_000)

    assert signal.type == "buy"
    assert signal.confidence == 80
    assert signal.reason.startswith("Mean reversion (80%): Price drop detected")


def test_threshold_crossing_used_when_mean_reversion_is_weak() -> None:
    clock = ManualClock(0)
    strategy = _combined(clock, 99.0, 101.0)

    _tick(strategy, clock, 100.0, 0)
    signal = _tick(strategy, clock, 98.9, 60_000)

    assert signal.type == "buy"
    assert signal.confidence == 80
    assert signal.reason.startswith("Threshold buy")


def test_weak_mean_reversion_alone_is_not_actionable() -> None:
    clock = ManualClock(0)
    strategy = _combined(clock, 90.0, 110.0)

    _tick(strategy, clock, 100.0, 0)
    signal = _tick(strategy, clock, 98.9, 60_000)

    assert signal.type == "none"
    assert "below priority confidence" in signal.reason


def test_positions_open_and_close_together() -> None:
    clock = ManualClock(0)
    strategy = _combined(clock, 90.0, 110.0)
    _tick(strategy, clock, 100.0, 0)
    _tick(strategy, clock, 97.0, 60_000)

    strategy.execute_buy(97.0, 1.0)
    status = strategy.status()
    assert strategy.position.state == PositionState.LONG
    assert status["mean_reversion"]["position"] == "long"
    assert status["threshold"]["position"] == "long"

    sell = _tick(strategy, clock, 97.6, 121_000)
    assert sell.type == "sell"
    assert "Take profit" in sell.reason

    closed = strategy.execute_sell(97.6, sell.reason)
    assert closed.quantity == 1.0
    assert closed.entry_price == 97.0
    assert strategy.status()["threshold"]["position"] == "none"
    assert strategy.position.state == PositionState.NONE


def test_factory_builds_combined_strategy() -> None:
    strategy = build_strategy(Settings(strategy=StrategyKind.COMBINED), ManualClock(0))
    assert isinstance(strategy, CombinedStrategy)
    assert strategy.name == "combined"
    assert strategy.trade_amount_quote == 10.0
