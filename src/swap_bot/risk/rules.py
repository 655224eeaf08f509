"""Trade risk scoring, trade ledger and emergency-stop rules."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from swap_bot.config import RiskParameters
from swap_bot.types import DailyStats, PortfolioHealth, RiskAssessment, RiskReport, TradeRecord
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger, log_risk_event

REJECTION_SCORE = 70
MAX_SCORE = 100
DEFAULT_LEDGER_CAP = 1000
RECENT_TRADES = 10
VOLATILITY_LIMIT = 0.05

_POSITION_SIZE_PENALTY = 30
_SLIPPAGE_PENALTY = 25
_TRADE_COUNT_PENALTY = 40
_DAILY_LOSS_PENALTY = 50
_COOLDOWN_PENALTY = 20
_DRAWDOWN_PENALTY = 45
_VOLATILITY_PENALTY = 15

_LOW_WIN_RATE = 0.4
_DRAWDOWN_WARNING_RATIO = 0.8


def date_key_for(timestamp_ms: int) -> str:
    """UTC calendar day of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date().isoformat()


class RiskManager:
    """Scores prospective trades and tracks the executed-trade ledger.

    Mutated from the loop thread. Accessors take the lock and return copies so
    status reads from other threads see a consistent snapshot.
    """

    def __init__(
        self,
        params: RiskParameters,
        clock: Clock,
        *,
        ledger_cap: int = DEFAULT_LEDGER_CAP,
    ) -> None:
        if ledger_cap < 1:
            raise ValueError("ledger_cap_must_be_positive")
        self._params = params
        self._clock = clock
        self._ledger: deque[TradeRecord] = deque(maxlen=ledger_cap)
        self._daily = DailyStats(date_key=date_key_for(clock.now_ms()))
        self._lock = threading.Lock()
        self._logger = get_logger("swap_bot.risk.rules")

    @property
    def params(self) -> RiskParameters:
        with self._lock:
            return self._params

    @property
    def daily_stats(self) -> DailyStats:
        with self._lock:
            self._roll_day(self._clock.now_ms())
            return replace(self._daily)

    def ledger(self) -> list[TradeRecord]:
        with self._lock:
            return list(self._ledger)

    def assess_trade_risk(
        self,
        trade_amount_usd: float,
        current_price: float,
        target_price: float,
        portfolio_value_usd: float,
        slippage_bps: int,
    ) -> RiskAssessment:
        """Score one prospective trade; approved iff the score stays below 70."""
        with self._lock:
            now_ms = self._clock.now_ms()
            self._roll_day(now_ms)
            return self._score(
                trade_amount_usd,
                current_price,
                target_price,
                portfolio_value_usd,
                slippage_bps,
                now_ms,
            )

    def _score(
        self,
        trade_amount_usd: float,
        current_price: float,
        target_price: float,
        portfolio_value_usd: float,
        slippage_bps: int,
        now_ms: int,
    ) -> RiskAssessment:
        params = self._params
        reasons: list[str] = []
        score = 0

        if portfolio_value_usd <= 0:
            reasons.append("Portfolio value unavailable for position sizing")
            score += _POSITION_SIZE_PENALTY
        else:
            position_pct = trade_amount_usd / portfolio_value_usd * 100
            if position_pct > params.max_position_size_pct:
                reasons.append(
                    f"Position size ({position_pct:.2f}%) exceeds maximum "
                    f"({params.max_position_size_pct}%)"
                )
                score += _POSITION_SIZE_PENALTY

        if slippage_bps > params.max_slippage_bps:
            reasons.append(
                f"Slippage ({slippage_bps}bps) exceeds maximum ({params.max_slippage_bps}bps)"
            )
            score += _SLIPPAGE_PENALTY

        if self._daily.total_trades >= params.max_trades_per_day:
            reasons.append(f"Daily trade limit ({params.max_trades_per_day}) reached")
            score += _TRADE_COUNT_PENALTY

        halted = False
        if abs(self._daily.total_pnl) >= params.max_daily_loss_usd:
            reasons.append(f"Daily loss limit (${params.max_daily_loss_usd}) exceeded")
            score += _DAILY_LOSS_PENALTY
            halted = True

        if self._daily.current_drawdown_pct >= params.emergency_stop_loss_pct:
            reasons.append(
                f"Emergency stop loss triggered ({self._daily.current_drawdown_pct:.2f}%)"
            )
            halted = True

        if self._ledger:
            since_last = (now_ms - self._ledger[-1].timestamp_ms) / 1000
            if since_last < params.cooldown_seconds:
                reasons.append(
                    f"Cooldown period not met ({since_last:.0f}s < {params.cooldown_seconds:g}s)"
                )
                score += _COOLDOWN_PENALTY

        if self._daily.current_drawdown_pct >= params.max_drawdown_pct:
            reasons.append(
                f"Portfolio drawdown ({self._daily.current_drawdown_pct:.2f}%) exceeds maximum "
                f"({params.max_drawdown_pct}%)"
            )
            score += _DRAWDOWN_PENALTY

        if current_price > 0:
            price_move = abs(target_price - current_price) / current_price
            if price_move > VOLATILITY_LIMIT:
                reasons.append(f"High price volatility detected ({price_move * 100:.2f}%)")
                score += _VOLATILITY_PENALTY

        # An active emergency-stop condition can never be approved.
        if halted:
            score = max(score, REJECTION_SCORE)
        score = min(score, MAX_SCORE)
        return RiskAssessment(risk_score=score, reasons=reasons, approved=score < REJECTION_SCORE)

    def record_trade(self, trade: TradeRecord) -> None:
        """Append an executed trade and refresh the daily aggregates."""
        with self._lock:
            self._ledger.append(trade)
            self._roll_day(trade.timestamp_ms)

            self._daily.total_trades += 1
            self._daily.total_pnl += trade.pnl_usd
            if trade.pnl_usd < 0:
                self._daily.max_loss = min(self._daily.max_loss, trade.pnl_usd)
            if len(self._ledger) >= 2:
                self._daily.current_drawdown_pct = self._max_drawdown_pct()

    def emergency_stop_reasons(self) -> list[str]:
        with self._lock:
            self._roll_day(self._clock.now_ms())
            return self._emergency_reasons()

    def should_emergency_stop(self) -> bool:
        """True when trading must halt. Logs the triggering reasons."""
        reasons = self.emergency_stop_reasons()
        if reasons:
            self._logger.error("emergency_stop_triggered", reasons=reasons)
            return True
        return False

    def get_risk_report(self) -> RiskReport:
        with self._lock:
            self._roll_day(self._clock.now_ms())
            ledger = list(self._ledger)
            return RiskReport(
                daily_stats=replace(self._daily),
                risk_parameters=self._params.model_dump(),
                recent_trades=ledger[-RECENT_TRADES:],
                portfolio_health=self._assess_health(ledger),
            )

    def update_risk_parameters(self, **changes: Any) -> RiskParameters:
        """Apply new limits. Raises pydantic.ValidationError on bad values."""
        with self._lock:
            self._params = RiskParameters.model_validate({**self._params.model_dump(), **changes})
            params = self._params
        log_risk_event(self._logger, event_type="parameters_updated", action="apply", **changes)
        return params

    def _roll_day(self, now_ms: int) -> None:
        # Only moves forward; a late trade stamped on an earlier day joins the current stats.
        day = date_key_for(now_ms)
        if day > self._daily.date_key:
            self._logger.info("daily_stats_rollover", previous=self._daily.date_key, current=day)
            self._daily = DailyStats(date_key=day)

    def _emergency_reasons(self) -> list[str]:
        reasons: list[str] = []
        if self._daily.current_drawdown_pct >= self._params.emergency_stop_loss_pct:
            reasons.append(
                f"Emergency stop loss triggered ({self._daily.current_drawdown_pct:.2f}%)"
            )
        if abs(self._daily.total_pnl) >= self._params.max_daily_loss_usd:
            reasons.append("Daily loss limit exceeded")
        return reasons

    def _max_drawdown_pct(self) -> float:
        # Full scan of the retained ledger on every insert; bounded by the ledger cap.
        peak = self._ledger[0].portfolio_value_usd
        worst = 0.0
        for trade in self._ledger:
            value = trade.portfolio_value_usd
            peak = max(peak, value)
            if peak > 0:
                worst = max(worst, (peak - value) / peak * 100)
        return worst

    def _assess_health(self, ledger: list[TradeRecord]) -> PortfolioHealth:
        closed = [t.pnl_pct for t in ledger if t.side == "sell"]
        win_rate = sum(1 for p in closed if p > 0) / len(closed) if closed else None
        avg_return = sum(closed) / len(closed) if closed else 0.0

        sharpe = 0.0
        if len(closed) >= 2:
            variance = sum((p - avg_return) ** 2 for p in closed) / len(closed)
            std = math.sqrt(variance)
            sharpe = avg_return / std if std > 0 else 0.0

        drawdown = self._daily.current_drawdown_pct
        status = "healthy"
        issues: list[str] = []
        if drawdown > self._params.max_drawdown_pct * _DRAWDOWN_WARNING_RATIO:
            status = "warning"
            issues.append("High drawdown detected")
        if win_rate is not None and win_rate < _LOW_WIN_RATE:
            status = "warning"
            issues.append("Low win rate")
        if drawdown >= self._params.emergency_stop_loss_pct:
            status = "critical"
            issues.append("Emergency stop loss threshold reached")

        return PortfolioHealth(
            status=status,
            win_rate=win_rate,
            avg_return=avg_return,
            sharpe_ratio=sharpe,
            issues=issues,
        )
