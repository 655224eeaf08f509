"""Polling trading loop: price -> signal -> risk gate -> guarded swap -> ledger."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import asdict
from time import perf_counter
from typing import Any

from swap_bot.config import LoopConfig
from swap_bot.exec.base import Notifier, PriceFeed, SignalStrategy, SwapExecutor, WalletBalanceProvider
from swap_bot.exec.errors import PriceFeedError, SwapError
from swap_bot.journal.store import JournalStore
from swap_bot.risk.circuit import CircuitBreaker, CircuitOpenError
from swap_bot.risk.rules import RiskManager
from swap_bot.strategy.market import analyze_market_conditions
from swap_bot.strategy.sizing import position_size_quote
from swap_bot.types import (
    IterationResult,
    LoopState,
    PricePoint,
    RiskAssessment,
    Side,
    SwapResult,
    TradeRecord,
    TradeSignal,
)
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger, log_risk_event, log_swap_execution, log_trade_signal

BUY_TARGET_FACTOR = 0.999
SELL_TARGET_FACTOR = 1.001
_MAX_PRICES = 100

_BACKOFF_STATUSES = {"price_unavailable", "circuit_open", "swap_failed", "failed"}


class TradingLoopController:
    """One bot instance. All trading state is mutated from the loop thread only."""

    def __init__(
        self,
        *,
        strategy: SignalStrategy,
        risk: RiskManager,
        breaker: CircuitBreaker,
        feed: PriceFeed,
        executor: SwapExecutor,
        wallet: WalletBalanceProvider,
        config: LoopConfig,
        clock: Clock,
        notifier: Notifier | None = None,
        journal: JournalStore | None = None,
    ) -> None:
        self._strategy = strategy
        self._risk = risk
        self._breaker = breaker
        self._feed = feed
        self._executor = executor
        self._wallet = wallet
        self._config = config
        self._clock = clock
        self._notifier = notifier
        self._journal = journal
        self._state = LoopState.STOPPED
        self._stop_event = threading.Event()
        self._prices: deque[float] = deque(maxlen=_MAX_PRICES)
        self._emergency_active = False
        self._iterations = 0
        self._last_result: IterationResult | None = None
        self._logger = get_logger("swap_bot.controller").bind(pair_id=config.pair_id)

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def strategy(self) -> SignalStrategy:
        return self._strategy

    @property
    def risk(self) -> RiskManager:
        return self._risk

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def config(self) -> LoopConfig:
        return self._config

    def run_forever(self, max_iterations: int | None = None) -> int:
        """Run until stop() is called. Returns the number of iterations run.

        A stop requested before the loop starts is honoured immediately.
        """
        if self._state == LoopState.RUNNING:
            raise RuntimeError("loop_already_running")
        self._state = LoopState.RUNNING
        self._logger.info(
            "loop_started",
            strategy=self._strategy.name,
            poll_interval_seconds=self._config.poll_interval_seconds,
        )
        self._record("loop_start", {"strategy": self._strategy.name, "pair_id": self._config.pair_id})
        self._notify(f"Trading loop started for {self._config.pair_id} ({self._strategy.name})")

        count = 0
        try:
            while not self._stop_event.is_set():
                result = self.run_iteration()
                count += 1
                if max_iterations is not None and count >= max_iterations:
                    break
                if self._stop_event.is_set():
                    break
                if result.status in _BACKOFF_STATUSES:
                    wait_seconds = self._config.error_backoff_seconds
                else:
                    wait_seconds = self._config.poll_interval_seconds
                self._logger.debug("waiting_next_iteration", wait_seconds=wait_seconds, status=result.status)
                self._clock.sleep(wait_seconds, self._stop_event)
        finally:
            self._state = LoopState.STOPPED
            self._stop_event.clear()
            self._logger.info("loop_stopped", iterations=count)
            self._record("loop_stop", {"iterations": count})
            self._notify(f"Trading loop stopped for {self._config.pair_id} after {count} iterations")
        return count

    def stop(self) -> None:
        """Request a cooperative stop; the in-flight iteration completes first."""
        self._stop_event.set()
        self._logger.info("loop_stop_requested")

    def run_iteration(self) -> IterationResult:
        """Run one tick. Never raises; failures come back as a `failed` result."""
        started = perf_counter()
        try:
            return self._iterate(started)
        except Exception as exc:  # noqa: BLE001 - top-level guard for loop resilience.
            self._logger.exception("iteration_failed", error=str(exc))
            self._record("error", {"stage": "iteration", "error": str(exc)})
            return self._finish(started, IterationResult(status="failed", reasons=[str(exc)]))

    def status(self) -> dict[str, Any]:
        """Snapshot copy for status displays and chat commands."""
        last = self._last_result
        return {
            "state": self._state.value,
            "pair_id": self._config.pair_id,
            "iterations": self._iterations,
            "emergency_stop": self._emergency_active,
            "last_status": last.status if last else None,
            "last_reasons": list(last.reasons) if last else [],
            "strategy": self._strategy.status(),
            "risk": asdict(self._risk.get_risk_report()),
            "circuit": asdict(self._breaker.status()),
        }

    def _iterate(self, started: float) -> IterationResult:
        pair_id = self._config.pair_id
        try:
            quote = self._feed.get_price(pair_id)
        except PriceFeedError as exc:
            self._logger.warning("price_fetch_failed", error=str(exc))
            self._record("error", {"stage": "price", "error": str(exc)})
            return self._finish(
                started,
                IterationResult(status="price_unavailable", reasons=[f"Price unavailable: {exc}"]),
            )

        self._prices.append(quote.price)
        point = PricePoint(price=quote.price, timestamp_ms=self._clock.now_ms())
        self._record("price", {"price": quote.price, "confidence": quote.confidence, "timestamp_ms": point.timestamp_ms})

        signal = self._strategy.analyze(point)
        log_trade_signal(
            self._logger,
            pair_id=pair_id,
            signal_type=signal.type,
            confidence=signal.confidence,
            reason=signal.reason,
            price=quote.price,
        )
        self._record("signal", asdict(signal))

        if self._risk.should_emergency_stop():
            reasons = self._risk.emergency_stop_reasons()
            if not self._emergency_active:
                self._emergency_active = True
                self._record("emergency_stop", {"reasons": reasons})
                self._notify("EMERGENCY STOP: " + "; ".join(reasons))
            return self._finish(started, IterationResult(status="emergency_stop", signal=signal, reasons=reasons))
        if self._emergency_active:
            self._emergency_active = False
            self._logger.info("emergency_stop_cleared")

        if signal.type == "none":
            return self._finish(started, IterationResult(status="no_signal", signal=signal, reasons=[signal.reason]))

        if signal.confidence <= self._config.min_confidence:
            reason = (
                f"Signal confidence {signal.confidence:.0f} does not exceed minimum "
                f"{self._config.min_confidence:.0f}"
            )
            return self._finish(started, IterationResult(status="low_confidence", signal=signal, reasons=[reason]))

        balance = self._wallet.get_balance()
        if balance < self._config.min_balance_usd:
            reason = f"Wallet balance ${balance:.2f} below minimum ${self._config.min_balance_usd:.2f}"
            self._logger.warning("insufficient_balance", balance=balance, minimum=self._config.min_balance_usd)
            return self._finish(
                started,
                IterationResult(status="insufficient_balance", signal=signal, reasons=[reason]),
            )

        side: Side = "buy" if signal.type == "buy" else "sell"
        price = quote.price
        if side == "buy":
            trade_usd = position_size_quote(
                self._strategy.trade_amount_quote,
                analyze_market_conditions(list(self._prices)),
                balance,
                self._risk.params.max_position_size_pct,
                volatility_adjustment=self._config.volatility_sizing,
            )
            amount = trade_usd / price
            target = price * BUY_TARGET_FACTOR
        else:
            amount = self._strategy.position.quantity
            trade_usd = amount * price
            target = price * SELL_TARGET_FACTOR
        if amount <= 0:
            return self._finish(
                started,
                IterationResult(status="no_position", signal=signal, reasons=["No open position quantity to sell"]),
            )

        slippage_bps = self._strategy.max_slippage_bps
        assessment = self._risk.assess_trade_risk(trade_usd, price, target, balance, slippage_bps)
        self._record("risk_check", {"side": side, "amount": amount, **asdict(assessment)})
        if not assessment.approved:
            log_risk_event(
                self._logger,
                event_type="trade_rejected",
                action="skip",
                risk_score=assessment.risk_score,
                reasons=assessment.reasons,
            )
            return self._finish(
                started,
                IterationResult(
                    status="risk_rejected",
                    signal=signal,
                    risk=assessment,
                    reasons=list(assessment.reasons),
                ),
            )

        try:
            swap = self._breaker.execute(lambda: self._executor.swap(amount, side, slippage_bps))
        except CircuitOpenError as exc:
            self._logger.warning("swap_skipped_circuit_open", side=side)
            return self._finish(
                started,
                IterationResult(status="circuit_open", signal=signal, risk=assessment, reasons=[str(exc)]),
            )
        except SwapError as exc:
            return self._swap_failed(started, signal, assessment, side, amount, exc)

        trade = self._apply_fill(signal, swap, balance)
        return self._finish(
            started,
            IterationResult(
                status="bought" if side == "buy" else "sold",
                signal=signal,
                risk=assessment,
                swap=swap,
                trade=trade,
                reasons=[signal.reason],
            ),
        )

    def _apply_fill(self, signal: TradeSignal, swap: SwapResult, balance_before: float) -> TradeRecord:
        fill_price = swap.fill_price or signal.current_price
        pnl_pct = 0.0
        pnl_usd = 0.0
        if swap.side == "buy":
            self._strategy.execute_buy(fill_price, swap.amount)
        else:
            closed = self._strategy.execute_sell(fill_price, signal.reason)
            pnl_pct = closed.profit_pct
            pnl_usd = (fill_price - closed.entry_price) * closed.quantity if closed.quantity else 0.0

        try:
            portfolio_value = self._wallet.get_balance()
        except Exception as exc:  # noqa: BLE001 - an executed fill is always recorded.
            self._logger.warning("post_trade_balance_failed", error=str(exc))
            portfolio_value = balance_before

        trade = TradeRecord(
            timestamp_ms=self._clock.now_ms(),
            side=swap.side,
            amount=swap.amount,
            price=fill_price,
            slippage_bps=self._strategy.max_slippage_bps,
            pnl_pct=pnl_pct,
            portfolio_value_usd=portfolio_value,
            fee_estimate=self._config.fee_estimate,
            pnl_usd=pnl_usd,
        )
        self._risk.record_trade(trade)
        log_swap_execution(
            self._logger,
            pair_id=self._config.pair_id,
            side=swap.side,
            amount=swap.amount,
            price=fill_price,
            transaction_id=swap.transaction_id,
            status="confirmed",
            pnl_pct=round(pnl_pct, 4),
        )
        self._record("swap", asdict(swap))
        self._record("trade", asdict(trade))
        message = f"{swap.side.upper()} {swap.amount:.6f} {self._config.pair_id} @ {fill_price:.4f} (tx {swap.transaction_id})"
        if swap.side == "sell":
            message += f" P&L {pnl_pct:+.2f}%"
        self._notify(message)
        return trade

    def _swap_failed(
        self,
        started: float,
        signal: TradeSignal,
        assessment: RiskAssessment,
        side: Side,
        amount: float,
        exc: SwapError,
    ) -> IterationResult:
        log_swap_execution(
            self._logger,
            pair_id=self._config.pair_id,
            side=side,
            amount=amount,
            status="failed",
            error=str(exc),
        )
        self._record("error", {"stage": "swap", "side": side, "amount": amount, "error": str(exc)})
        reasons = [f"Swap failed: {exc}"]
        if self._breaker.is_open:
            reasons.append("Circuit breaker opened after repeated swap failures")
            self._notify(f"Circuit breaker OPEN for {self._config.pair_id}: {exc}")
        else:
            self._notify(f"Swap {side} failed: {exc}")
        return self._finish(
            started,
            IterationResult(status="swap_failed", signal=signal, risk=assessment, reasons=reasons),
        )

    def _finish(self, started: float, result: IterationResult) -> IterationResult:
        result.elapsed_ms = (perf_counter() - started) * 1000
        self._iterations += 1
        self._last_result = result
        self._logger.info("iteration_completed", status=result.status, elapsed_ms=round(result.elapsed_ms, 2))
        return result

    def _notify(self, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(message)
        except Exception as exc:  # noqa: BLE001 - notifier failures never abort trading.
            self._logger.warning("notify_failed", error=str(exc))

    def _record(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._journal is None:
            return
        try:
            self._journal.append(event_type, payload)
        except OSError as exc:
            self._logger.warning("journal_write_failed", event_type=event_type, error=str(exc))
