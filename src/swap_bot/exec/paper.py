"""Paper wallet: simulated swap fills with persistent local balances."""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from swap_bot.exec.errors import SwapError
from swap_bot.types import Side, SwapResult
from swap_bot.utils.logging import get_logger

_STATE_FILE = "paper_wallet.json"
_DUST = 1e-12


@dataclass(slots=True)
class _PaperState:
    base_balance: float
    quote_balance: float
    swaps: int
    last_fill_price: float | None


class PaperSwapExecutor:
    """Simulated executor that also serves as the paper WalletBalanceProvider."""

    def __init__(
        self,
        journal_dir: Path | None,
        *,
        price_source: Callable[[], float | None],
        slippage_bps: float = 5.0,
        initial_base: float = 1.0,
        initial_quote: float = 100.0,
    ) -> None:
        self._price_source = price_source
        self._slippage_bps = slippage_bps
        self._state_file = journal_dir / _STATE_FILE if journal_dir is not None else None
        self._state = self._load_state(initial_base, initial_quote)
        self._logger = get_logger("swap_bot.exec.paper")

    @property
    def base_balance(self) -> float:
        return self._state.base_balance

    @property
    def quote_balance(self) -> float:
        return self._state.quote_balance

    @property
    def swap_count(self) -> int:
        return self._state.swaps

    def swap(self, amount: float, direction: Side, max_slippage_bps: int) -> SwapResult:
        """Fill `amount` base units at the reference price plus simulated slippage."""
        if amount <= 0:
            raise SwapError("amount_must_be_positive")
        price = self._price_source()
        if price is None or price <= 0:
            raise SwapError("no_reference_price")
        if self._slippage_bps > max_slippage_bps:
            raise SwapError(
                f"simulated slippage {self._slippage_bps:g}bps exceeds limit {max_slippage_bps}bps"
            )

        factor = self._slippage_bps / 10_000.0
        state = self._state
        if direction == "buy":
            fill_price = price * (1.0 + factor)
            cost = amount * fill_price
            if cost > state.quote_balance + _DUST:
                raise SwapError(
                    f"insufficient_quote_balance: need {cost:.4f}, have {state.quote_balance:.4f}"
                )
            state.quote_balance = max(0.0, state.quote_balance - cost)
            state.base_balance += amount
        else:
            fill_price = price * (1.0 - factor)
            if amount > state.base_balance + _DUST:
                raise SwapError(
                    f"insufficient_base_balance: need {amount:.6f}, have {state.base_balance:.6f}"
                )
            state.base_balance = max(0.0, state.base_balance - amount)
            state.quote_balance += amount * fill_price

        state.swaps += 1
        state.last_fill_price = fill_price
        self._persist()
        transaction_id = f"paper-{uuid.uuid4().hex[:16]}"
        self._logger.info(
            "paper_swap_filled",
            side=direction,
            amount=amount,
            fill_price=fill_price,
            transaction_id=transaction_id,
        )
        return SwapResult(
            transaction_id=transaction_id,
            side=direction,
            amount=float(amount),
            fill_price=float(fill_price),
        )

    def get_balance(self) -> float:
        """Portfolio value in quote currency at the latest known price."""
        price = self._price_source()
        if price is None:
            price = self._state.last_fill_price or 0.0
        return self._state.quote_balance + self._state.base_balance * price

    def snapshot(self) -> dict[str, Any]:
        return asdict(self._state)

    def _load_state(self, initial_base: float, initial_quote: float) -> _PaperState:
        if self._state_file is None or not self._state_file.exists():
            return _PaperState(
                base_balance=initial_base,
                quote_balance=initial_quote,
                swaps=0,
                last_fill_price=None,
            )

        raw = json.loads(self._state_file.read_text(encoding="utf-8"))
        last_fill = raw.get("last_fill_price")
        return _PaperState(
            base_balance=float(raw.get("base_balance", initial_base)),
            quote_balance=float(raw.get("quote_balance", initial_quote)),
            swaps=int(raw.get("swaps", 0)),
            last_fill_price=float(last_fill) if last_fill is not None else None,
        )

    def _persist(self) -> None:
        if self._state_file is None:
            return
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        serialized = json.dumps(asdict(self._state), ensure_ascii=True, indent=2)
        self._state_file.write_text(serialized, encoding="utf-8")
