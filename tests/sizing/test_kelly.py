"""Tests for Kelly bet sizing."""

import logging

import pytest

from manifolio.core.exceptions import InvalidProbabilityError
from manifolio.core.models import CpmmState, LimitOrder, Outcome, Pool, Position
from manifolio.market.model import MarketModel
from manifolio.portfolio.user_model import UserModel
from manifolio.sizing.kelly import (
    KellyStrategy,
    calculate_full_kelly_bet,
    calculate_naive_kelly_bet,
    calculate_naive_kelly_fraction,
    portfolio_risk_factor,
    recommend_bet,
)


def _deep_market(prob: float) -> MarketModel:
    return MarketModel(CpmmState.from_probability(prob, 100_000), slug="deep")


def _high_risk_user() -> UserModel:
    return UserModel(balance=100, positions=[Position(probability=0.5, payout=100)] * 2, loans=80)


def _low_risk_user() -> UserModel:
    return UserModel(balance=100, positions=[Position(probability=0.5, payout=2)] * 20, loans=10)


class TestNaiveKelly:
    """Tests for the closed-form naive Kelly stake."""

    def test_known_value(self) -> None:
        """Test half-Kelly on a 50% market with a 60% estimate."""
        # 0.5 * |0.6 - 0.5| / (1 - 0.5) = 0.1 of 100
        bet = calculate_naive_kelly_bet(0.5, 0.6, 0.5, 100)
        assert bet.amount == pytest.approx(10)
        assert bet.outcome is Outcome.YES

    def test_no_side_uses_same_denominator(self) -> None:
        """Test a NO bet divides by one minus the market probability."""
        kelly = calculate_naive_kelly_fraction(0.6, 0.3, 1.0)
        assert kelly.outcome is Outcome.NO
        assert kelly.fraction == pytest.approx(0.3 / 0.4)

    def test_fraction_is_clamped(self) -> None:
        """Test the fraction never exceeds the whole bankroll."""
        assert calculate_naive_kelly_fraction(0.9, 0.1, 1.0).fraction == 1.0

    def test_no_edge(self) -> None:
        """Test agreeing with the market means betting nothing."""
        kelly = calculate_naive_kelly_fraction(0.4, 0.4, 0.5)
        assert kelly.fraction == 0
        assert kelly.outcome is Outcome.NO

    @pytest.mark.parametrize("market_prob", [0.0, 1.0, float("nan")])
    def test_degenerate_market_raises(self, market_prob: float) -> None:
        """Test a certain or NaN market probability is an error."""
        with pytest.raises(InvalidProbabilityError):
            calculate_naive_kelly_fraction(market_prob, 0.5, 0.5)

    def test_degenerate_estimate_raises(self) -> None:
        """Test a certain estimate is an error."""
        with pytest.raises(InvalidProbabilityError):
            calculate_naive_kelly_fraction(0.5, 1.0, 0.5)

    def test_deference_out_of_range_raises(self) -> None:
        """Test deference must lie in [0, 1]."""
        with pytest.raises(ValueError, match="deference_factor"):
            calculate_naive_kelly_fraction(0.5, 0.6, 1.5)


class TestPortfolioRiskFactor:
    """Tests for folding existing positions into the bankroll."""

    def test_empty_portfolio_is_neutral(self) -> None:
        """Test a user without positions keeps the full bankroll."""
        assert portfolio_risk_factor(0.4, 0.6, 0.5, UserModel(balance=100)) == 1.0

    def test_no_edge_is_neutral(self) -> None:
        """Test the factor is 1 when there is nothing to bet."""
        assert portfolio_risk_factor(0.5, 0.5, 0.5, _high_risk_user()) == 1.0

    def test_high_risk_portfolio_shrinks_stake(self) -> None:
        """Test large, uncertain positions on top of heavy loans shrink the stake."""
        factor = portfolio_risk_factor(0.4, 0.6, 0.5, _high_risk_user())
        assert 0.15 < factor < 0.3

    def test_low_risk_portfolio_barely_shrinks_stake(self) -> None:
        """Test many small positions behave almost like cash."""
        factor = portfolio_risk_factor(0.4, 0.6, 0.5, _low_risk_user())
        assert 0.99 < factor < 1.0

    def test_insolvent_worst_case_is_zero(self) -> None:
        """Test no stake is safe when losing every position leaves negative wealth."""
        user = UserModel(balance=10, positions=[Position(probability=0.9, payout=100)], loans=50)
        assert portfolio_risk_factor(0.4, 0.6, 0.5, user) == 0.0

    def test_excluding_market(self) -> None:
        """Test the position on the market being bet on can be ignored."""
        user = UserModel(
            balance=100,
            positions=[Position(probability=0.5, payout=100, contract_id="this")],
        )
        assert portfolio_risk_factor(0.4, 0.6, 0.5, user, excluding_market_id="this") == 1.0
        assert portfolio_risk_factor(0.4, 0.6, 0.5, user) < 1.0


class TestFullKelly:
    """Tests for the price-impact-aware solver."""

    @pytest.mark.parametrize(
        ("market_prob", "estimated_prob", "deference"),
        [
            (0.5, 0.6, 0.5),
            (0.3, 0.6, 0.5),
            (0.6, 0.3, 0.5),
            (0.05, 0.5, 0.3),
            (0.9, 0.95, 1.0),
            (0.7, 0.2, 0.8),
            (0.5, 0.51, 0.99),
        ],
    )
    def test_matches_naive_in_deep_market(
        self, market_prob: float, estimated_prob: float, deference: float
    ) -> None:
        """Test negligible price impact reproduces the naive stake within 1%."""
        market = _deep_market(market_prob)
        user = UserModel(balance=100)
        naive = calculate_naive_kelly_bet(market_prob, estimated_prob, deference, 100)
        full = calculate_full_kelly_bet(estimated_prob, deference, market, user)
        assert full.outcome is naive.outcome
        assert full.amount == pytest.approx(naive.amount, rel=0.01)

    def test_matches_naive_against_resting_order(self) -> None:
        """Test an order at the market price absorbs the bet without price impact."""
        order = LimitOrder(
            id="o1",
            user_id="maker",
            outcome=Outcome.NO,
            order_amount=1000,
            limit_prob=0.6,
        )
        market = MarketModel(CpmmState.from_probability(0.6, 100), [order], {"maker": 1000})
        user = UserModel(balance=1000)
        naive = calculate_naive_kelly_bet(0.6, 0.8, 1.0, 1000)
        full = calculate_full_kelly_bet(0.8, 1.0, market, user)
        assert naive.amount == pytest.approx(500)
        assert full.amount == pytest.approx(naive.amount, rel=0.01)
        assert full.probability_after == pytest.approx(0.6)

    def test_thin_market_shrinks_stake(self) -> None:
        """Test heavy price impact pulls the stake far below the naive amount."""
        market = MarketModel(CpmmState(pool=Pool(yes=10, no=10), p=0.5))
        user = UserModel(balance=1000)
        naive = calculate_naive_kelly_bet(0.5, 0.8, 1.0, 1000)
        full = calculate_full_kelly_bet(0.8, 1.0, market, user)
        assert full.outcome is Outcome.YES
        assert 0 < full.amount < naive.amount / 2

    def test_reports_execution_of_returned_amount(self) -> None:
        """Test shares and probability_after describe the recommended stake."""
        market = MarketModel(CpmmState.from_probability(0.5, 50))
        full = calculate_full_kelly_bet(0.7, 0.5, market, UserModel(balance=200))
        simulated = market.simulate_bet(full.outcome, full.amount)
        assert full.shares == pytest.approx(simulated.shares)
        assert full.probability_after == pytest.approx(simulated.probability_after)

    def test_no_edge_bets_nothing(self) -> None:
        """Test an estimate equal to the market recommends zero."""
        market = _deep_market(0.4)
        full = calculate_full_kelly_bet(0.4, 0.5, market, UserModel(balance=100))
        assert full.amount == 0
        assert full.probability_after == pytest.approx(0.4)

    def test_high_risk_user_bets_less(self) -> None:
        """Test risky positions and loans shrink the stake by more than 1%."""
        market = _deep_market(0.4)
        risky = calculate_full_kelly_bet(0.6, 0.5, market, _high_risk_user())
        fresh = calculate_full_kelly_bet(0.6, 0.5, market, UserModel(balance=100))
        cash = calculate_full_kelly_bet(
            0.6, 0.5, market, UserModel(balance=_high_risk_user().effective_bankroll)
        )
        assert risky.amount < fresh.amount
        assert (fresh.amount - risky.amount) / fresh.amount > 0.01
        assert (cash.amount - risky.amount) / cash.amount > 0.01

    def test_low_risk_user_bets_almost_the_same(self) -> None:
        """Test small diversified positions shrink the stake by under 1%."""
        market = _deep_market(0.4)
        user = _low_risk_user()
        risky = calculate_full_kelly_bet(0.6, 0.5, market, user)
        cash = calculate_full_kelly_bet(
            0.6, 0.5, market, UserModel(balance=user.effective_bankroll)
        )
        assert risky.amount < cash.amount
        assert (cash.amount - risky.amount) / cash.amount < 0.01

    def test_degenerate_market_raises(self) -> None:
        """Test a pool implying certainty propagates as an error."""
        market = MarketModel(CpmmState(pool=Pool(yes=0, no=10), p=0.5))
        with pytest.raises(InvalidProbabilityError):
            calculate_full_kelly_bet(0.6, 0.5, market, UserModel(balance=100))


class TestRecommendBet:
    """Tests for the top-level entry point."""

    def test_naive_strategy(self) -> None:
        """Test the naive strategy sizes on the effective bankroll."""
        market = _deep_market(0.5)
        user = UserModel(balance=120, loans=20)
        rec = recommend_bet(0.6, 0.5, market, user, strategy="naive")
        assert rec.amount == pytest.approx(10)
        assert rec.outcome is Outcome.YES
        assert rec.shares > 0
        assert rec.probability_after > 0.5

    def test_full_strategy_is_default(self) -> None:
        """Test the default strategy matches the full solver."""
        market = _deep_market(0.5)
        user = UserModel(balance=100)
        assert recommend_bet(0.6, 0.5, market, user) == calculate_full_kelly_bet(
            0.6, 0.5, market, user
        )

    def test_negative_bankroll_bets_nothing(self) -> None:
        """Test loans exceeding the balance give a zero naive stake."""
        user = UserModel(balance=10, loans=50)
        rec = recommend_bet(0.6, 0.5, _deep_market(0.5), user, strategy=KellyStrategy.NAIVE)
        assert rec.amount == 0

    def test_unknown_strategy_raises(self) -> None:
        """Test an unknown strategy name is rejected."""
        with pytest.raises(ValueError, match="bogus"):
            recommend_bet(0.6, 0.5, _deep_market(0.5), UserModel(balance=100), strategy="bogus")

    def test_logs_summary(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the recommendation is logged at INFO level."""
        with caplog.at_level(logging.INFO, logger="manifolio.sizing.kelly"):
            recommend_bet(0.6, 0.5, _deep_market(0.5), UserModel(balance=100))
        assert "Recommend YES" in caplog.text
        assert "deep" in caplog.text
