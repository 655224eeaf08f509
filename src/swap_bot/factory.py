"""Assemble a trading loop controller from settings."""

from __future__ import annotations

from swap_bot.config import Settings, StrategyKind
from swap_bot.controller import TradingLoopController
from swap_bot.exec.base import SignalStrategy
from swap_bot.exec.jupiter import JupiterClient, JupiterPriceFeed, JupiterSwapExecutor, Signer, resolve_pair
from swap_bot.exec.paper import PaperSwapExecutor
from swap_bot.exec.solana_rpc import SolanaRPCClient, SolanaWalletBalance
from swap_bot.journal.store import JournalStore
from swap_bot.notifications.telegram import build_notifier
from swap_bot.risk.circuit import CircuitBreaker
from swap_bot.risk.rules import RiskManager
from swap_bot.strategy.combined import CombinedStrategy
from swap_bot.strategy.mean_reversion import MeanReversionStrategy
from swap_bot.strategy.thresholds import ThresholdStrategy
from swap_bot.utils.clock import Clock, SystemClock


def build_strategy(settings: Settings, clock: Clock) -> SignalStrategy:
    if settings.strategy == StrategyKind.THRESHOLD:
        return ThresholdStrategy(settings.threshold_config(), clock)
    if settings.strategy == StrategyKind.COMBINED:
        return CombinedStrategy(
            MeanReversionStrategy(settings.mean_reversion_config(), clock),
            ThresholdStrategy(settings.threshold_config(), clock),
        )
    return MeanReversionStrategy(settings.mean_reversion_config(), clock)


def build_controller(
    settings: Settings,
    *,
    clock: Clock | None = None,
    signer: Signer | None = None,
) -> TradingLoopController:
    """Paper mode simulates fills locally; live mode needs an external signer."""
    clock = clock or SystemClock()
    jupiter = JupiterClient(settings)
    feed = JupiterPriceFeed(jupiter, clock)

    if settings.is_live_mode:
        missing = settings.validate_for_live()
        if missing:
            raise ValueError(f"missing_live_config: {', '.join(missing)}")
        if signer is None:
            raise ValueError("live_mode_requires_signer")
        _, quote_token = resolve_pair(settings.pair_id)
        rpc = SolanaRPCClient(settings.solana_rpc_url, timeout=settings.http_timeout)
        executor: JupiterSwapExecutor | PaperSwapExecutor = JupiterSwapExecutor(
            jupiter,
            rpc,
            signer,
            pair_id=settings.pair_id,
            wallet_public_key=settings.wallet_public_key,
            confirm_timeout=settings.confirm_timeout,
            clock=clock,
        )
        wallet: SolanaWalletBalance | PaperSwapExecutor = SolanaWalletBalance(
            rpc,
            settings.wallet_public_key,
            quote_token.mint,
            feed.current_price,
        )
    else:
        paper = PaperSwapExecutor(
            settings.journal_dir,
            price_source=feed.current_price,
            slippage_bps=settings.paper_slippage_bps,
            initial_base=settings.paper_base_balance,
            initial_quote=settings.paper_quote_balance,
        )
        executor = paper
        wallet = paper

    return TradingLoopController(
        strategy=build_strategy(settings, clock),
        risk=RiskManager(settings.risk_parameters(), clock),
        breaker=CircuitBreaker(settings.circuit_breaker_config(), clock),
        feed=feed,
        executor=executor,
        wallet=wallet,
        config=settings.loop_config(),
        clock=clock,
        notifier=build_notifier(settings),
        journal=JournalStore(settings.journal_dir, clock),
    )
