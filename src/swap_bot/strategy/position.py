"""Single-position bookkeeping shared by strategies."""

from __future__ import annotations

from dataclasses import replace

from swap_bot.types import Position, PositionState, SellResult
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger


class PositionBook:
    """Tracks at most one open long position (no pyramiding)."""

    def __init__(self, clock: Clock, name: str = "strategy") -> None:
        self._clock = clock
        self._position = Position()
        self._logger = get_logger("swap_bot.strategy.position").bind(strategy=name)

    @property
    def position(self) -> Position:
        return replace(self._position)

    @property
    def is_long(self) -> bool:
        return self._position.state == PositionState.LONG

    def open_long(self, price: float, quantity: float = 0.0) -> bool:
        """Open a long position. Returns False if one is already open."""
        if self.is_long:
            self._logger.warning(
                "buy_ignored_position_open",
                entry_price=self._position.entry_price,
                price=price,
            )
            return False
        self._position = Position(
            state=PositionState.LONG,
            entry_price=float(price),
            entry_timestamp_ms=self._clock.now_ms(),
            quantity=float(quantity),
        )
        self._logger.info("position_opened", entry_price=price, quantity=quantity)
        return True

    def close(self, price: float, reason: str) -> SellResult:
        """Close the open position. Selling while flat is a no-op."""
        if not self.is_long:
            self._logger.warning("sell_ignored_no_position", price=price, reason=reason)
            return SellResult(profit_pct=0.0, hold_duration_ms=0)

        active = self._position
        profit_pct = self.unrealized_pct(price)
        hold_ms = self._clock.now_ms() - active.entry_timestamp_ms
        self._position = Position()
        self._logger.info(
            "position_closed",
            exit_price=price,
            profit_pct=round(profit_pct, 4),
            hold_seconds=round(hold_ms / 1000, 1),
            reason=reason,
        )
        return SellResult(
            profit_pct=profit_pct,
            hold_duration_ms=hold_ms,
            quantity=active.quantity,
            entry_price=active.entry_price,
        )

    def unrealized_pct(self, price: float) -> float:
        """P&L of the open position at `price`, in percent of entry."""
        entry = self._position.entry_price
        if not self.is_long or entry <= 0:
            return 0.0
        return (price - entry) / entry * 100

    def held_ms(self) -> int:
        if not self.is_long:
            return 0
        return self._clock.now_ms() - self._position.entry_timestamp_ms
