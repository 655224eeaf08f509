"""Micro mean-reversion signal engine.

Buys after a short, sharp drop inside the monitor window and exits on stop
loss, take profit or maximum hold time, checked in that order. Thresholds are
fractions of a percent: the strategy targets high-frequency micro moves.
"""

from __future__ import annotations

from typing import Any

from swap_bot.config import MeanReversionConfig
from swap_bot.strategy.history import PriceHistoryBuffer
from swap_bot.strategy.position import PositionBook
from swap_bot.types import Position, PricePoint, SellResult, TradeSignal
from swap_bot.utils.clock import Clock

_STOP_LOSS_CONFIDENCE = 90.0
_TAKE_PROFIT_CONFIDENCE = 85.0
_MAX_HOLD_CONFIDENCE = 75.0
_HOLDING_CONFIDENCE = 50.0
_NO_SIGNAL_CONFIDENCE = 30.0
_MAX_BUY_CONFIDENCE = 95.0


class MeanReversionStrategy:
    """Signal engine with a NONE/LONG position state machine."""

    name = "mean_reversion"

    def __init__(self, config: MeanReversionConfig, clock: Clock) -> None:
        self._config = config
        self._clock = clock
        self._history = PriceHistoryBuffer(config.monitor_window_ms)
        self._book = PositionBook(clock, name=self.name)

    @property
    def config(self) -> MeanReversionConfig:
        return self._config

    @property
    def trade_amount_quote(self) -> float:
        return self._config.trade_amount_quote

    @property
    def max_slippage_bps(self) -> int:
        return self._config.max_slippage_bps

    @property
    def position(self) -> Position:
        return self._book.position

    @property
    def history(self) -> PriceHistoryBuffer:
        return self._history

    def analyze(self, point: PricePoint) -> TradeSignal:
        """Record the sample and produce a fresh signal."""
        self._history.record(point.price, point.timestamp_ms)
        price = point.price

        if self._book.is_long:
            return self._exit_signal(price)

        change = self._history.change_over_window(
            self._config.monitor_window_ms,
            now_ms=self._clock.now_ms(),
        )
        if change is None:
            return TradeSignal(
                type="none",
                reason="Insufficient price history for analysis",
                confidence=0.0,
                price_change_pct=0.0,
                window_ms=0,
                current_price=price,
            )

        seconds = change.duration_ms / 1000
        if change.percent_change <= -self._config.drop_threshold_pct:
            confidence = min(_MAX_BUY_CONFIDENCE, 50 + abs(change.percent_change) * 10)
            return TradeSignal(
                type="buy",
                reason=f"Price drop detected: {change.percent_change:.2f}% in {seconds:.0f}s",
                confidence=confidence,
                price_change_pct=change.percent_change,
                window_ms=change.duration_ms,
                current_price=price,
            )

        return TradeSignal(
            type="none",
            reason=(
                f"Price change: {change.percent_change:+.2f}% in {seconds:.0f}s "
                f"(threshold: -{self._config.drop_threshold_pct}%)"
            ),
            confidence=_NO_SIGNAL_CONFIDENCE,
            price_change_pct=change.percent_change,
            window_ms=change.duration_ms,
            current_price=price,
        )

    def execute_buy(self, price: float, quantity: float = 0.0) -> None:
        """Mark a confirmed buy. Ignored with a warning while already LONG."""
        self._book.open_long(price, quantity)

    def execute_sell(self, price: float, reason: str) -> SellResult:
        """Mark a confirmed sell and return realized P&L."""
        return self._book.close(price, reason)

    def update_config(self, **changes: Any) -> MeanReversionConfig:
        """Replace parameters; the result is re-validated."""
        self._config = MeanReversionConfig.model_validate({**self._config.model_dump(), **changes})
        self._history.window_ms = self._config.monitor_window_ms
        return self._config

    def status(self) -> dict[str, Any]:
        """Snapshot for status displays."""
        position = self._book.position
        return {
            "strategy": self.name,
            "position": position.state.value,
            "entry_price": position.entry_price,
            "entry_timestamp_ms": position.entry_timestamp_ms,
            "quantity": position.quantity,
            "price_history_count": len(self._history),
            "config": self._config.model_dump(),
        }

    def _exit_signal(self, price: float) -> TradeSignal:
        position = self._book.position
        pnl_pct = self._book.unrealized_pct(price)
        held_ms = self._book.held_ms()

        if pnl_pct <= -self._config.stop_loss_pct:
            reason = f"Stop loss triggered: {pnl_pct:.2f}% loss"
            confidence = _STOP_LOSS_CONFIDENCE
        elif pnl_pct >= self._config.take_profit_pct:
            reason = f"Take profit triggered: {pnl_pct:.2f}% gain"
            confidence = _TAKE_PROFIT_CONFIDENCE
        elif held_ms > self._config.max_position_time_ms:
            reason = f"Max position time exceeded: {held_ms / 60_000:.1f} minutes"
            confidence = _MAX_HOLD_CONFIDENCE
        else:
            return TradeSignal(
                type="none",
                reason=(
                    f"Holding position: {pnl_pct:+.2f}% from entry "
                    f"${position.entry_price:.2f}"
                ),
                confidence=_HOLDING_CONFIDENCE,
                price_change_pct=pnl_pct,
                window_ms=held_ms,
                current_price=price,
                entry_price=position.entry_price,
            )

        return TradeSignal(
            type="sell",
            reason=reason,
            confidence=confidence,
            price_change_pct=pnl_pct,
            window_ms=held_ms,
            current_price=price,
            entry_price=position.entry_price,
        )
