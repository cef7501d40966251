"""
Insider score for whale trades

Large bets on unlikely outcomes, unusual size relative to the market's normal
trades, and early positions in new markets all point towards informed trading.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass
class InsiderScoreFactors:
    low_probability_bet: bool           # Betting on <15% or >85% outcomes
    size_multiple: float                # Trade notional as a multiple of the asset's average
    market_age_hours: float             # Hours since the asset was first observed
    outcome_price: float                # Price of the outcome being bet on (0-1)
    wallet_win_rate: Optional[float] = None


def calculate_insider_score(factors: InsiderScoreFactors) -> int:
    """Score 0-100; higher means more likely informed trading"""
    score = 0.0

    if factors.low_probability_bet:
        score += 25

    # Unusual size: 5x normal is the max
    score += min(25.0, max(factors.size_multiple, 0.0) * 5)

    # New market first mover
    if factors.market_age_hours < 1:
        score += 15
    elif factors.market_age_hours < 6:
        score += 10
    elif factors.market_age_hours < 24:
        score += 5

    # Extreme price positioning
    if factors.outcome_price < 0.10 or factors.outcome_price > 0.90:
        score += 15
    elif factors.outcome_price < 0.20 or factors.outcome_price > 0.80:
        score += 8

    if factors.wallet_win_rate is not None:
        score += min(max(factors.wallet_win_rate, 0.0), 1.0) * 20

    return int(min(100, round(score)))
