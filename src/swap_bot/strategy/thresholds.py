"""Buy-below / sell-above threshold strategy with an optional volatility band."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any

from swap_bot.config import ThresholdConfig
from swap_bot.strategy.market import MarketConditions, analyze_market_conditions
from swap_bot.strategy.position import PositionBook
from swap_bot.types import Position, PricePoint, SellResult, TradeSignal
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger

_CROSSING_CONFIDENCE = 80.0
_HOLDING_CONFIDENCE = 50.0
_NO_SIGNAL_CONFIDENCE = 30.0
_QUIET_SPREAD_FACTOR = 0.7
_QUIET_VOLATILITY_PCT = 0.02
_MAX_PRICES = 100


@dataclass(frozen=True, slots=True)
class ThresholdBand:
    buy_below: float
    sell_above: float
    reference_price: float
    updated_ms: int
    spread: float = 0.0


def compute_spread(config: ThresholdConfig, conditions: MarketConditions) -> float:
    """Volatility-scaled spread, clamped, tightened in quiet sideways markets."""
    spread = config.base_spread * (1 + conditions.volatility_pct * config.volatility_multiplier)
    spread = max(config.min_spread, min(config.max_spread, spread))
    if conditions.trend == "sideways" and conditions.volatility_pct < _QUIET_VOLATILITY_PCT:
        spread *= _QUIET_SPREAD_FACTOR
    return spread


class ThresholdStrategy:
    """Trades price crossings of fixed or reference-anchored thresholds."""

    name = "threshold"

    def __init__(self, config: ThresholdConfig, clock: Clock) -> None:
        self._config = config
        self._clock = clock
        self._prices: deque[float] = deque(maxlen=_MAX_PRICES)
        self._band: ThresholdBand | None = None
        self._book = PositionBook(clock, name=self.name)
        self._logger = get_logger("swap_bot.strategy.thresholds")

    @property
    def config(self) -> ThresholdConfig:
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
    def band(self) -> ThresholdBand | None:
        return self._band

    def analyze(self, point: PricePoint) -> TradeSignal:
        self._prices.append(point.price)
        price = point.price
        conditions = analyze_market_conditions(list(self._prices))
        band = self._thresholds(price, conditions)

        if self._book.is_long:
            position = self._book.position
            pnl_pct = self._book.unrealized_pct(price)
            if price >= band.sell_above and conditions.trend != "up":
                return TradeSignal(
                    type="sell",
                    reason=f"Threshold sell: price {price:.4f} >= {band.sell_above:.4f}",
                    confidence=_CROSSING_CONFIDENCE,
                    price_change_pct=pnl_pct,
                    window_ms=self._book.held_ms(),
                    current_price=price,
                    entry_price=position.entry_price,
                )
            return TradeSignal(
                type="none",
                reason=(
                    f"Holding position: {pnl_pct:+.2f}% from entry ${position.entry_price:.2f} "
                    f"(sell >= {band.sell_above:.4f}, trend {conditions.trend})"
                ),
                confidence=_HOLDING_CONFIDENCE,
                price_change_pct=pnl_pct,
                window_ms=self._book.held_ms(),
                current_price=price,
                entry_price=position.entry_price,
            )

        if price <= band.buy_below and conditions.trend != "down":
            return TradeSignal(
                type="buy",
                reason=f"Threshold buy: price {price:.4f} <= {band.buy_below:.4f}",
                confidence=_CROSSING_CONFIDENCE,
                price_change_pct=conditions.momentum_pct,
                window_ms=0,
                current_price=price,
            )
        return TradeSignal(
            type="none",
            reason=(
                f"Price {price:.4f} vs buy <= {band.buy_below:.4f} "
                f"(trend {conditions.trend}, volatility {conditions.volatility_pct:.2f}%)"
            ),
            confidence=_NO_SIGNAL_CONFIDENCE,
            price_change_pct=conditions.momentum_pct,
            window_ms=0,
            current_price=price,
        )

    def execute_buy(self, price: float, quantity: float = 0.0) -> None:
        self._book.open_long(price, quantity)

    def execute_sell(self, price: float, reason: str) -> SellResult:
        return self._book.close(price, reason)

    def status(self) -> dict[str, Any]:
        position = self._book.position
        band = self._band
        return {
            "strategy": self.name,
            "position": position.state.value,
            "entry_price": position.entry_price,
            "quantity": position.quantity,
            "buy_below": band.buy_below if band else None,
            "sell_above": band.sell_above if band else None,
            "reference_price": band.reference_price if band else None,
            "config": self._config.model_dump(),
        }

    def _thresholds(self, price: float, conditions: MarketConditions) -> ThresholdBand:
        now = self._clock.now_ms()
        if self._config.buy_below is not None and self._config.sell_above is not None:
            if self._band is None:
                self._band = ThresholdBand(
                    buy_below=self._config.buy_below,
                    sell_above=self._config.sell_above,
                    reference_price=price,
                    updated_ms=now,
                )
            return self._band

        band = self._band
        if band is not None:
            elapsed = now - band.updated_ms
            moved_pct = abs(price - band.reference_price) / band.reference_price * 100
            if elapsed <= self._config.rebase_interval_ms and moved_pct <= self._config.rebase_move_pct:
                return band
            self._logger.info(
                "threshold_rebase",
                old_reference=band.reference_price,
                new_reference=price,
                elapsed_minutes=round(elapsed / 60_000, 1),
                moved_pct=round(moved_pct, 2),
            )

        spread = compute_spread(self._config, conditions)
        self._band = ThresholdBand(
            buy_below=price - spread / 2,
            sell_above=price + spread / 2,
            reference_price=price,
            updated_ms=now,
            spread=spread,
        )
        return self._band
