"""Mean reversion first, threshold crossings as the fallback signal."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from swap_bot.strategy.mean_reversion import MeanReversionStrategy
from swap_bot.strategy.thresholds import ThresholdStrategy
from swap_bot.types import Position, PricePoint, SellResult, TradeSignal

PRIORITY_CONFIDENCE = 70.0


class CombinedStrategy:
    """Runs both engines on every sample and keeps their positions in lockstep.

    A mean-reversion signal wins when it is actionable and its confidence is
    above `min_confidence`. Otherwise an actionable threshold signal is used.
    """

    name = "combined"

    def __init__(
        self,
        mean_reversion: MeanReversionStrategy,
        threshold: ThresholdStrategy,
        *,
        min_confidence: float = PRIORITY_CONFIDENCE,
    ) -> None:
        self._mean_reversion = mean_reversion
        self._threshold = threshold
        self._min_confidence = min_confidence

    @property
    def trade_amount_quote(self) -> float:
        return self._mean_reversion.trade_amount_quote

    @property
    def max_slippage_bps(self) -> int:
        return self._mean_reversion.max_slippage_bps

    @property
    def position(self) -> Position:
        return self._mean_reversion.position

    def analyze(self, point: PricePoint) -> TradeSignal:
        reverting = self._mean_reversion.analyze(point)
        crossing = self._threshold.analyze(point)

        if reverting.type != "none" and reverting.confidence > self._min_confidence:
            return replace(
                reverting,
                reason=f"Mean reversion ({reverting.confidence:.0f}%): {reverting.reason}",
            )
        if crossing.type != "none":
            return crossing
        if reverting.type == "none":
            return reverting
        return replace(
            reverting,
            type="none",
            reason=(
                f"Mean reversion {reverting.type} below priority confidence "
                f"({reverting.confidence:.0f} <= {self._min_confidence:.0f}): {reverting.reason}"
            ),
        )

    def execute_buy(self, price: float, quantity: float = 0.0) -> None:
        self._mean_reversion.execute_buy(price, quantity)
        self._threshold.execute_buy(price, quantity)

    def execute_sell(self, price: float, reason: str) -> SellResult:
        self._threshold.execute_sell(price, reason)
        return self._mean_reversion.execute_sell(price, reason)

    def status(self) -> dict[str, Any]:
        return {
            "strategy": self.name,
            "position": self.position.state.value,
            "mean_reversion": self._mean_reversion.status(),
            "threshold": self._threshold.status(),
        }
