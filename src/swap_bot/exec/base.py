"""Collaborator contracts consumed by the trading loop."""

from __future__ import annotations

from typing import Protocol

from swap_bot.types import Position, PricePoint, PriceQuote, SellResult, Side, SwapResult, TradeSignal


class PriceFeed(Protocol):
    def get_price(self, pair_id: str) -> PriceQuote:
        """Return the current price or raise PriceFeedError."""


class SwapExecutor(Protocol):
    def swap(self, amount: float, direction: Side, max_slippage_bps: int) -> SwapResult:
        """Swap `amount` base-token units. All-or-nothing; raises SwapError."""


class WalletBalanceProvider(Protocol):
    def get_balance(self) -> float:
        """Portfolio value in quote currency."""


class Notifier(Protocol):
    def notify(self, message: str) -> None:
        """Push a one-way status message."""


class SignalStrategy(Protocol):
    name: str

    @property
    def trade_amount_quote(self) -> float: ...

    @property
    def max_slippage_bps(self) -> int: ...

    @property
    def position(self) -> Position: ...

    def analyze(self, point: PricePoint) -> TradeSignal: ...

    def execute_buy(self, price: float, quantity: float = 0.0) -> None: ...

    def execute_sell(self, price: float, reason: str) -> SellResult: ...

    def status(self) -> dict[str, object]: ...
