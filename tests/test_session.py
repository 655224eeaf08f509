from __future__ import annotations

import threading
from pathlib import Path

import pytest

from swap_bot.config import CircuitBreakerConfig, LoopConfig, MeanReversionConfig, RiskParameters, Settings
from swap_bot.controller import TradingLoopController
from swap_bot.exec.paper import PaperSwapExecutor
from swap_bot.risk.circuit import CircuitBreaker
from swap_bot.risk.rules import RiskManager
from swap_bot.session import BotRegistry
from swap_bot.strategy.mean_reversion import MeanReversionStrategy
from swap_bot.types import PriceQuote
from swap_bot.utils.clock import SystemClock


class _StaticFeed:
    def __init__(self, price: float) -> None:
        self.price = price

    def get_price(self, pair_id: str) -> PriceQuote:
        return PriceQuote(price=self.price, confidence=95.0)

    def current_price(self) -> float | None:
        return self.price


def _factory(settings: Settings) -> TradingLoopController:
    clock = SystemClock()
    feed = _StaticFeed(100.0)
    wallet = PaperSwapExecutor(None, price_source=feed.current_price)
    return TradingLoopController(
        strategy=MeanReversionStrategy(MeanReversionConfig(), clock),
        risk=RiskManager(RiskParameters(), clock),
        breaker=CircuitBreaker(CircuitBreakerConfig(), clock),
        feed=feed,
        executor=wallet,
        wallet=wallet,
        config=LoopConfig(pair_id=settings.pair_id, poll_interval_seconds=30.0, error_backoff_seconds=10.0),
        clock=clock,
    )


def test_create_and_lookup_sessions() -> None:
    registry = BotRegistry(factory=_factory)
    first = registry.create("chat-2", Settings())
    registry.create("chat-1", Settings())

    assert registry.get("chat-2") is first
    assert registry.get("missing") is None
    assert registry.session_ids() == ["chat-1", "chat-2"]
    with pytest.raises(ValueError, match="session_exists"):
        registry.create("chat-1", Settings())


def test_sessions_are_isolated() -> None:
    registry = BotRegistry(factory=_factory)
    a = registry.create("a", Settings())
    b = registry.create("b", Settings())

    a.run_iteration()

    assert a.status()["iterations"] == 1
    assert b.status()["iterations"] == 0
    assert a.strategy is not b.strategy
    assert a.risk is not b.risk


def test_start_and_stop_background_loop() -> None:
    registry = BotRegistry(factory=_factory)
    registry.create("chat", Settings())

    thread = registry.start("chat")
    assert isinstance(thread, threading.Thread)
    with pytest.raises(RuntimeError, match="session_running"):
        registry.start("chat")

    assert registry.stop("chat", timeout=5.0)
    status = registry.status("chat")
    assert status["session_id"] == "chat"
    assert status["thread_alive"] is False
    assert status["state"] == "stopped"


def test_finished_session_stop_is_noop() -> None:
    registry = BotRegistry(factory=_factory)
    registry.create("chat", Settings())
    registry.start("chat", max_iterations=1).join(5.0)

    assert registry.stop("chat")
    assert registry.status("chat")["iterations"] == 1


def test_remove_and_unknown_session() -> None:
    registry = BotRegistry(factory=_factory)
    registry.create("chat", Settings())
    registry.remove("chat")
    assert registry.session_ids() == []
    with pytest.raises(KeyError):
        registry.status("chat")


def test_sessions_get_their_own_journal_dirs(tmp_path: Path) -> None:
    seen: list[Settings] = []

    def _recording_factory(settings: Settings) -> TradingLoopController:
        seen.append(settings)
        return _factory(settings)

    registry = BotRegistry(factory=_recording_factory)
    shared = Settings(journal_dir=tmp_path / "journal")
    registry.create("alice", shared)
    registry.create("bob_2", shared)

    assert [s.journal_dir for s in seen] == [tmp_path / "journal" / "alice", tmp_path / "journal" / "bob_2"]
    assert shared.journal_dir == tmp_path / "journal"


def test_invalid_session_ids_are_rejected() -> None:
    registry = BotRegistry(factory=_factory)
    for session_id in ("", "../escape", "a/b", "chat 1", "chat\n"):
        with pytest.raises(ValueError, match="invalid_session_id"):
            registry.create(session_id, Settings())
    assert registry.session_ids() == []
