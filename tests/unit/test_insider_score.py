"""
Unit tests for the whale insider score
"""
import pytest
from activity_engine.detection import InsiderScoreFactors, calculate_insider_score


class TestInsiderScore:

    def test_ordinary_trade_scores_low(self):
        factors = InsiderScoreFactors(
            low_probability_bet=False,
            size_multiple=1.0,
            market_age_hours=48,
            outcome_price=0.5,
        )
        assert calculate_insider_score(factors) == 5

    def test_all_signals_capped_at_100(self):
        factors = InsiderScoreFactors(
            low_probability_bet=True,
            size_multiple=50.0,
            market_age_hours=0.5,
            outcome_price=0.03,
            wallet_win_rate=1.0,
        )
        assert calculate_insider_score(factors) == 100

    def test_size_contribution_is_capped(self):
        base = dict(low_probability_bet=False, market_age_hours=48, outcome_price=0.5)

        assert calculate_insider_score(InsiderScoreFactors(size_multiple=5, **base)) == 25
        assert calculate_insider_score(InsiderScoreFactors(size_multiple=500, **base)) == 25

    @pytest.mark.parametrize('hours,expected', [(0.5, 15), (3, 10), (12, 5), (24, 0)])
    def test_market_age_points(self, hours, expected):
        factors = InsiderScoreFactors(
            low_probability_bet=False,
            size_multiple=0,
            market_age_hours=hours,
            outcome_price=0.5,
        )
        assert calculate_insider_score(factors) == expected

    @pytest.mark.parametrize('price,expected', [(0.05, 15), (0.95, 15), (0.15, 8), (0.85, 8), (0.5, 0)])
    def test_extreme_price_points(self, price, expected):
        factors = InsiderScoreFactors(
            low_probability_bet=False,
            size_multiple=0,
            market_age_hours=48,
            outcome_price=price,
        )
        assert calculate_insider_score(factors) == expected

    def test_negative_inputs_stay_in_range(self):
        factors = InsiderScoreFactors(
            low_probability_bet=False,
            size_multiple=-10,
            market_age_hours=48,
            outcome_price=0.5,
            wallet_win_rate=-1,
        )
        assert calculate_insider_score(factors) == 0
