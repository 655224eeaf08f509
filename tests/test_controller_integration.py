from __future__ import annotations

from pathlib import Path

import pytest

from swap_bot.config import CircuitBreakerConfig, LoopConfig, MeanReversionConfig, RiskParameters
from swap_bot.controller import TradingLoopController
from swap_bot.exec.errors import PriceFeedError, SolanaRPCError, SwapError
from swap_bot.journal.store import JournalStore
from swap_bot.risk.circuit import CircuitBreaker
from swap_bot.risk.rules import RiskManager
from swap_bot.strategy.mean_reversion import MeanReversionStrategy
from swap_bot.types import LoopState, PositionState, PriceQuote, Side, SwapResult, TradeRecord
from swap_bot.utils.clock import ManualClock


class _FakeFeed:
    def __init__(self, prices: list[float | None]) -> None:
        self._prices = list(prices)
        self.last_price: float | None = None
        self.calls = 0

    def get_price(self, pair_id: str) -> PriceQuote:
        self.calls += 1
        price = self._prices.pop(0) if len(self._prices) > 1 else self._prices[0]
        if price is None:
            raise PriceFeedError("quote timeout")
        self.last_price = price
        return PriceQuote(price=price, confidence=95.0)


class _FakeExecutor:
    def __init__(self, feed: _FakeFeed, *, fail: bool = False) -> None:
        self._feed = feed
        self.fail = fail
        self.calls: list[tuple[float, Side, int]] = []

    def swap(self, amount: float, direction: Side, max_slippage_bps: int) -> SwapResult:
        self.calls.append((amount, direction, max_slippage_bps))
        if self.fail:
            raise SwapError("route not found")
        return SwapResult(
            transaction_id=f"tx-{len(self.calls)}",
            side=direction,
            amount=amount,
            fill_price=self._feed.last_price,
        )


class _FakeWallet:
    def __init__(self, balance: float = 1_000.0) -> None:
        self.balance = balance

    def get_balance(self) -> float:
        return self.balance


class _FlakyWallet:
    def __init__(self) -> None:
        self.calls = 0

    def get_balance(self) -> float:
        self.calls += 1
        if self.calls > 1:
            raise SolanaRPCError("node behind")
        return 1_000.0


class _MalformedBalanceWallet:
    def __init__(self) -> None:
        self.calls = 0

    def get_balance(self) -> float:
        self.calls += 1
        if self.calls > 1:
            raise KeyError("parsed")
        return 1_000.0


class _BrokenWallet:
    def get_balance(self) -> float:
        raise RuntimeError("wallet exploded")


class _RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class _FailingNotifier:
    def notify(self, message: str) -> None:
        raise RuntimeError("telegram down")


def _controller(
    prices: list[float | None],
    *,
    clock: ManualClock | None = None,
    wallet: object | None = None,
    risk_params: RiskParameters | None = None,
    failure_threshold: int = 5,
    fail_swaps: bool = False,
    notifier: object | None = None,
    journal: JournalStore | None = None,
) -> tuple[TradingLoopController, _FakeFeed, _FakeExecutor, ManualClock]:
    clock = clock or ManualClock(0)
    feed = _FakeFeed(prices)
    executor = _FakeExecutor(feed, fail=fail_swaps)
    controller = TradingLoopController(
        strategy=MeanReversionStrategy(MeanReversionConfig(), clock),
        risk=RiskManager(risk_params or RiskParameters(), clock),
        breaker=CircuitBreaker(CircuitBreakerConfig(failure_threshold=failure_threshold), clock),
        feed=feed,
        executor=executor,
        wallet=wallet or _FakeWallet(),  # type: ignore[arg-type]
        config=LoopConfig(),
        clock=clock,
        notifier=notifier,  # type: ignore[arg-type]
        journal=journal,
    )
    return controller, feed, executor, clock


def test_buy_then_take_profit_sell(tmp_path: Path) -> None:
    notifier = _RecordingNotifier()
    journal = JournalStore(tmp_path / "journal")
    controller, _, executor, clock = _controller(
        [100.0, 97.0, 97.6],
        notifier=notifier,
        journal=journal,
    )

    assert controller.run_iteration().status == "no_signal"

    clock.set(60_000)
    bought = controller.run_iteration()
    assert bought.status == "bought"
    assert bought.risk is not None and bought.risk.approved
    amount, side, slippage = executor.calls[0]
    assert side == "buy"
    assert amount == pytest.approx(10.0 / 97.0)
    assert slippage == 50
    assert controller.strategy.position.state == PositionState.LONG
    assert controller.strategy.position.entry_price == 97.0

    clock.set(121_000)
    sold = controller.run_iteration()
    assert sold.status == "sold"
    assert executor.calls[1][1] == "sell"
    assert executor.calls[1][0] == pytest.approx(amount)
    assert controller.strategy.position.state == PositionState.NONE
    assert sold.trade is not None
    assert sold.trade.pnl_pct == pytest.approx((97.6 - 97.0) / 97.0 * 100)
    assert sold.trade.pnl_usd == pytest.approx(0.6 * amount)

    ledger = controller.risk.ledger()
    assert [t.side for t in ledger] == ["buy", "sell"]
    assert any(m.startswith("BUY") for m in notifier.messages)
    assert any(m.startswith("SELL") and "P&L" in m for m in notifier.messages)

    events = [row["event_type"] for row in journal.load_recent(100)]
    for expected in ("price", "signal", "risk_check", "swap", "trade"):
        assert expected in events


def test_low_confidence_signal_is_skipped() -> None:
    controller, _, executor, clock = _controller([100.0, 98.8])
    controller.run_iteration()
    clock.set(60_000)

    result = controller.run_iteration()

    assert result.status == "low_confidence"
    assert result.signal is not None and result.signal.type == "buy"
    assert executor.calls == []


def test_price_unavailable() -> None:
    controller, _, executor, _ = _controller([None])
    result = controller.run_iteration()
    assert result.status == "price_unavailable"
    assert result.reasons[0].startswith("Price unavailable")
    assert executor.calls == []


def test_insufficient_balance() -> None:
    controller, _, executor, clock = _controller([100.0, 97.0], wallet=_FakeWallet(1.0))
    controller.run_iteration()
    clock.set(60_000)
    assert controller.run_iteration().status == "insufficient_balance"
    assert executor.calls == []


def test_risk_rejection_skips_swap() -> None:
    clock = ManualClock(0)
    controller, _, executor, _ = _controller(
        [100.0, 97.0],
        clock=clock,
        wallet=_FakeWallet(1_000.0),
        risk_params=RiskParameters(max_slippage_bps=10, max_trades_per_day=1),
    )
    controller.risk.record_trade(
        TradeRecord(
            timestamp_ms=0,
            side="sell",
            amount=0.1,
            price=100.0,
            slippage_bps=10,
            pnl_pct=0.0,
            portfolio_value_usd=1_000.0,
            fee_estimate=0.001,
        )
    )
    controller.run_iteration()
    clock.set(30_000)

    result = controller.run_iteration()

    assert result.status == "risk_rejected"
    assert result.risk is not None
    assert result.risk.risk_score == 85
    assert executor.calls == []


def test_buy_size_is_capped_by_position_limit() -> None:
    controller, _, executor, clock = _controller([100.0, 97.0], wallet=_FakeWallet(100.0))
    controller.run_iteration()
    clock.set(60_000)

    result = controller.run_iteration()

    assert result.status == "bought"
    assert result.risk is not None and result.risk.risk_score == 0
    assert executor.calls[0][0] == pytest.approx(5.0 / 97.0)


def test_swap_failure_leaves_state_untouched_and_opens_circuit() -> None:
    notifier = _RecordingNotifier()
    controller, _, executor, clock = _controller(
        [100.0, 97.0, 96.0],
        failure_threshold=1,
        fail_swaps=True,
        notifier=notifier,
    )
    controller.run_iteration()
    clock.set(60_000)

    failed = controller.run_iteration()
    assert failed.status == "swap_failed"
    assert "Circuit breaker opened after repeated swap failures" in failed.reasons
    assert controller.strategy.position.state == PositionState.NONE
    assert controller.risk.ledger() == []
    assert any("Circuit breaker OPEN" in m for m in notifier.messages)

    clock.set(70_000)
    skipped = controller.run_iteration()
    assert skipped.status == "circuit_open"
    assert len(executor.calls) == 1


def test_emergency_stop_blocks_trading_and_notifies_once() -> None:
    notifier = _RecordingNotifier()
    controller, _, executor, clock = _controller([100.0, 97.0, 96.0], notifier=notifier)
    for ts, value in ((0, 1_000.0), (1, 700.0)):
        controller.risk.record_trade(
            TradeRecord(
                timestamp_ms=ts,
                side="sell",
                amount=0.1,
                price=100.0,
                slippage_bps=50,
                pnl_pct=0.0,
                portfolio_value_usd=value,
                fee_estimate=0.001,
            )
        )

    statuses = []
    for ts in (3_600_000, 3_660_000, 3_670_000):
        clock.set(ts)
        statuses.append(controller.run_iteration().status)

    assert statuses == ["emergency_stop"] * 3
    assert executor.calls == []
    assert sum(1 for m in notifier.messages if m.startswith("EMERGENCY STOP")) == 1
    assert controller.status()["emergency_stop"] is True


def test_post_trade_balance_failure_falls_back() -> None:
    controller, _, _, clock = _controller([100.0, 97.0], wallet=_FlakyWallet())
    controller.run_iteration()
    clock.set(60_000)

    result = controller.run_iteration()

    assert result.status == "bought"
    assert result.trade is not None
    assert result.trade.portfolio_value_usd == 1_000.0


def test_post_trade_balance_parse_error_still_records_fill() -> None:
    controller, _, executor, clock = _controller([100.0, 97.0], wallet=_MalformedBalanceWallet())
    controller.run_iteration()
    clock.set(60_000)

    result = controller.run_iteration()

    assert result.status == "bought"
    assert len(executor.calls) == 1
    assert len(controller.risk.ledger()) == 1
    assert controller.risk.ledger()[0].portfolio_value_usd == 1_000.0
    assert controller.strategy.position.state == PositionState.LONG


def test_unexpected_error_becomes_failed_status() -> None:
    controller, _, _, clock = _controller([100.0, 97.0], wallet=_BrokenWallet())
    controller.run_iteration()
    clock.set(60_000)

    result = controller.run_iteration()

    assert result.status == "failed"
    assert result.reasons == ["wallet exploded"]


def test_run_forever_sleeps_poll_interval_between_iterations() -> None:
    controller, feed, _, clock = _controller([100.0])
    count = controller.run_forever(max_iterations=3)

    assert count == 3
    assert feed.calls == 3
    assert clock.sleeps == [60.0, 60.0]
    assert controller.state == LoopState.STOPPED


def test_run_forever_backs_off_after_failures() -> None:
    controller, _, _, clock = _controller([None])
    controller.run_forever(max_iterations=2)
    assert clock.sleeps == [30.0]


def test_stop_ends_loop_after_current_iteration() -> None:
    controller, feed, _, _ = _controller([100.0])
    original = feed.get_price

    def _stopping_get_price(pair_id: str) -> PriceQuote:
        if feed.calls == 1:
            controller.stop()
        return original(pair_id)

    feed.get_price = _stopping_get_price  # type: ignore[method-assign]

    assert controller.run_forever() == 2
    assert controller.state == LoopState.STOPPED
    assert controller.run_forever(max_iterations=1) == 1


def test_stop_before_start_is_honoured() -> None:
    controller, feed, _, _ = _controller([100.0])
    controller.stop()
    assert controller.run_forever() == 0
    assert feed.calls == 0


def test_notifier_failure_does_not_abort_loop() -> None:
    controller, _, _, _ = _controller([100.0], notifier=_FailingNotifier())
    assert controller.run_forever(max_iterations=2) == 2


def test_status_snapshot_after_trade() -> None:
    controller, _, _, clock = _controller([100.0, 97.0])
    controller.run_iteration()
    clock.set(60_000)
    controller.run_iteration()

    status = controller.status()
    assert status["state"] == "stopped"
    assert status["last_status"] == "bought"
    assert status["iterations"] == 2
    assert status["strategy"]["position"] == "long"
    assert status["circuit"]["state"] == "closed"
    assert status["risk"]["daily_stats"]["total_trades"] == 1
