"""Short-horizon market condition estimates from recent prices."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

Trend = Literal["up", "down", "sideways"]

LOOKBACK = 10
MOMENTUM_LAG = 5
TREND_THRESHOLD_PCT = 0.2


@dataclass(frozen=True, slots=True)
class MarketConditions:
    volatility_pct: float
    momentum_pct: float
    trend: Trend
    confidence: float


def analyze_market_conditions(prices: Sequence[float]) -> MarketConditions:
    """Estimate volatility, momentum and trend over the last LOOKBACK samples.

    Volatility is the population std-dev of sample-to-sample returns, momentum
    the change against the sample MOMENTUM_LAG steps back, both in percent.
    With too little history a quiet sideways default is returned.
    """
    if len(prices) < LOOKBACK:
        return MarketConditions(volatility_pct=0.015, momentum_pct=0.0, trend="sideways", confidence=50.0)

    window = list(prices[-LOOKBACK:])
    returns = [
        (window[i] - window[i - 1]) / window[i - 1]
        for i in range(1, len(window))
        if window[i - 1] > 0
    ]
    if returns:
        mean = sum(returns) / len(returns)
        volatility = math.sqrt(sum((r - mean) ** 2 for r in returns) / len(returns))
    else:
        volatility = 0.0

    current = prices[-1]
    anchor = prices[max(0, len(prices) - MOMENTUM_LAG)]
    momentum = (current - anchor) / anchor if anchor > 0 else 0.0
    momentum_pct = momentum * 100

    trend: Trend = "sideways"
    if momentum_pct > TREND_THRESHOLD_PCT:
        trend = "up"
    elif momentum_pct < -TREND_THRESHOLD_PCT:
        trend = "down"

    return MarketConditions(
        volatility_pct=volatility * 100,
        momentum_pct=momentum_pct,
        trend=trend,
        confidence=min(95.0, 50.0 + len(prices) * 2),
    )
