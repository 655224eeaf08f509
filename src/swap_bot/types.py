"""Shared domain types for the swap trading loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

Side = Literal["buy", "sell"]
SignalType = Literal["buy", "sell", "none"]
HealthStatus = Literal["healthy", "warning", "critical"]


class PositionState(str, Enum):
    """Open-position state of one strategy instance."""

    NONE = "none"
    LONG = "long"


class LoopState(str, Enum):
    """Lifecycle of the polling loop."""

    STOPPED = "stopped"
    RUNNING = "running"


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class PricePoint:
    """One timestamped price sample."""

    price: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class PriceChange:
    """Percentage move between the earliest and latest sample of a window."""

    percent_change: float
    duration_ms: int


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """Price feed answer for one pair."""

    price: float
    confidence: float
    timestamp_ms: int = 0


@dataclass(slots=True)
class Position:
    """Current position held by a strategy."""

    state: PositionState = PositionState.NONE
    entry_price: float = 0.0
    entry_timestamp_ms: int = 0
    quantity: float = 0.0


@dataclass(frozen=True, slots=True)
class TradeSignal:
    """Signal emitted by a strategy on every analysis call."""

    type: SignalType
    reason: str
    confidence: float
    price_change_pct: float
    window_ms: int
    current_price: float
    entry_price: float | None = None


@dataclass(frozen=True, slots=True)
class SellResult:
    """Outcome of closing a position."""

    profit_pct: float
    hold_duration_ms: int
    quantity: float = 0.0
    entry_price: float = 0.0


@dataclass(frozen=True, slots=True)
class TradeRecord:
    """Executed trade appended to the risk ledger."""

    timestamp_ms: int
    side: Side
    amount: float
    price: float
    slippage_bps: int
    pnl_pct: float
    portfolio_value_usd: float
    fee_estimate: float
    pnl_usd: float = 0.0


@dataclass(slots=True)
class DailyStats:
    """Aggregates for the current UTC day."""

    date_key: str
    total_trades: int = 0
    total_pnl: float = 0.0
    max_loss: float = 0.0
    current_drawdown_pct: float = 0.0


@dataclass(slots=True)
class RiskAssessment:
    """Result of scoring one prospective trade."""

    risk_score: int
    reasons: list[str] = field(default_factory=list)
    approved: bool = True


@dataclass(slots=True)
class PortfolioHealth:
    """Derived health of the trade ledger."""

    status: HealthStatus
    win_rate: float | None
    avg_return: float
    sharpe_ratio: float
    issues: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RiskReport:
    """Snapshot of risk state for operators."""

    daily_stats: DailyStats
    risk_parameters: dict[str, float | int]
    recent_trades: list[TradeRecord]
    portfolio_health: PortfolioHealth


@dataclass(frozen=True, slots=True)
class CircuitBreakerState:
    """Snapshot of a circuit breaker."""

    state: CircuitState
    is_open: bool
    consecutive_failures: int
    last_failure_timestamp_ms: int


@dataclass(frozen=True, slots=True)
class SwapResult:
    """Confirmed swap returned by an executor."""

    transaction_id: str
    side: Side
    amount: float
    fill_price: float | None = None


@dataclass(slots=True)
class IterationResult:
    """Outcome of one loop iteration."""

    status: str
    signal: TradeSignal | None = None
    risk: RiskAssessment | None = None
    swap: SwapResult | None = None
    trade: TradeRecord | None = None
    reasons: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
