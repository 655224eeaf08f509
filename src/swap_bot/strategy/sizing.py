"""Trade sizing from recent volatility and the position-size limit."""

from __future__ import annotations

from swap_bot.strategy.market import MarketConditions

HIGH_VOLATILITY_PCT = 3.0
MAX_VOLATILITY_CUT = 0.5


def position_size_quote(
    base_quote: float,
    conditions: MarketConditions,
    balance: float,
    max_position_pct: float,
    *,
    volatility_adjustment: bool = True,
) -> float:
    """Quote amount to spend on a buy.

    Above HIGH_VOLATILITY_PCT the base amount is cut by volatility/10, at most
    by half. The result never exceeds `max_position_pct` of the balance.
    """
    size = base_quote
    if volatility_adjustment and conditions.volatility_pct > HIGH_VOLATILITY_PCT:
        size *= 1 - min(MAX_VOLATILITY_CUT, conditions.volatility_pct / 10)
    return min(size, balance * max_position_pct / 100)
