"""Kelly-optimal bet sizing against a CPMM market.

Two strategies are provided:

- The naive closed form ``fraction = k * |p - m| / (1 - m)``, which
  assumes the whole bet executes at the current market price.
- The full solver, which accounts for the price impact of the bet itself
  by bisecting for the stake at which the naive formula, evaluated at the
  average execution price of that stake, recommends the stake itself.

The full solver also folds in the risk of the user's existing positions:
its bankroll is the effective bankroll scaled by ``portfolio_risk_factor``,
which compares the log-optimal stake when the portfolio is modelled by its
payout distribution against the stake when the portfolio is counted as
cash equal to its expected value.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from manifolio.core.floats import clamp, validate_probability
from manifolio.core.models import BetRecommendation, Outcome
from manifolio.market.model import MarketModel
from manifolio.portfolio.distribution import expected_value
from manifolio.portfolio.user_model import UserModel
from manifolio.sizing.odds import OddsType, convert_odds
from manifolio.sizing.root_finding import find_fixed_point, find_root

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 10

# Effective execution prices are pushed inside (0, 1) by at least this much
_PROBABILITY_MARGIN = 1e-9

_RISK_TOLERANCE = 1e-9
_RISK_MAX_ITERATIONS = 200


class KellyStrategy(Enum):
    """Bet sizing strategy."""

    NAIVE = "naive"
    FULL = "full"


@dataclass(frozen=True)
class KellyFraction:
    """Fraction of bankroll to bet and the side to bet on."""

    fraction: float
    outcome: Outcome


def _validate_deference(deference_factor: float) -> None:
    if not (0 <= deference_factor <= 1):
        msg = f"deference_factor must be between 0 and 1, got {deference_factor}"
        raise ValueError(msg)


def calculate_naive_kelly_fraction(
    market_prob: float,
    estimated_prob: float,
    deference_factor: float,
) -> KellyFraction:
    """Return the fractional-Kelly stake ignoring price impact.

    The deference factor scales the full Kelly fraction down. A value of
    0.5 amounts to "there is an even chance that I am right and the market
    is wrong".

    Args:
        market_prob: Current market probability, in (0, 1).
        estimated_prob: Own estimate of the YES probability, in (0, 1).
        deference_factor: Weight on the own estimate, in [0, 1].

    Returns:
        The bankroll fraction, clamped to [0, 1], and the outcome to buy.

    Raises:
        InvalidProbabilityError: If either probability is outside (0, 1).
        ValueError: If ``deference_factor`` is outside [0, 1].

    """
    validate_probability(market_prob, name="market probability")
    validate_probability(estimated_prob, name="estimated probability")
    _validate_deference(deference_factor)

    outcome = Outcome.YES if estimated_prob > market_prob else Outcome.NO
    fraction = deference_factor * abs(estimated_prob - market_prob) / (1 - market_prob)
    return KellyFraction(fraction=clamp(fraction, 0.0, 1.0), outcome=outcome)


def calculate_naive_kelly_bet(
    market_prob: float,
    estimated_prob: float,
    deference_factor: float,
    bankroll: float,
) -> BetRecommendation:
    """Return the naive Kelly stake: the naive fraction times ``bankroll``."""
    kelly = calculate_naive_kelly_fraction(market_prob, estimated_prob, deference_factor)
    return BetRecommendation(amount=kelly.fraction * bankroll, outcome=kelly.outcome)


def portfolio_risk_factor(  # noqa: PLR0913
    market_prob: float,
    estimated_prob: float,
    deference_factor: float,
    user_model: UserModel,
    *,
    excluding_market_id: str | None = None,
) -> float:
    """Return how much existing positions shrink the log-optimal stake.

    At the market's current odds ``b`` and the deference-adjusted win
    probability, compare two stakes:

    - ``x_cash``: the optimum when the portfolio is counted as cash equal
      to its expected value, ``(C + EV) * (p*b - q) / b``.
    - ``x_port``: the root of the expected log-wealth derivative with the
      portfolio payout ``I`` drawn from its PMF,
      ``sum P(I) * (p*b / (C + I + x*b) - q / (C + I - x)) = 0``.

    ``C`` is balance minus loans. Since log wealth is concave, low
    portfolio outcomes cost more than high ones gain, so ``x_port`` never
    exceeds ``x_cash``.

    Args:
        market_prob: Current market probability, in (0, 1).
        estimated_prob: Own estimate of the YES probability, in (0, 1).
        deference_factor: Weight on the own estimate, in [0, 1].
        user_model: Portfolio of the bettor.
        excluding_market_id: Contract whose position to leave out.

    Returns:
        ``x_port / x_cash`` in [0, 1]. Exactly 1 for a portfolio without
        risk or a bet without edge, and 0 when cash plus the worst
        portfolio outcome is not positive.

    """
    kelly = calculate_naive_kelly_fraction(market_prob, estimated_prob, deference_factor)
    pmf = user_model.portfolio_pmf(excluding_market_id)
    support = [payout for payout, prob in pmf.items() if prob > 0]
    if len(support) <= 1:
        return 1.0

    p_yes = deference_factor * estimated_prob + (1 - deference_factor) * market_prob
    p_win = p_yes if kelly.outcome is Outcome.YES else 1 - p_yes
    q_win = 1 - p_win
    price = market_prob if kelly.outcome is Outcome.YES else 1 - market_prob
    odds = convert_odds(price, OddsType.IMPLIED_PROBABILITY, OddsType.ENGLISH)
    edge = p_win * odds - q_win
    if edge <= 0:
        return 1.0

    cash = user_model.balance_after_loans
    worst_case = cash + min(support)
    if worst_case <= 0:
        logger.info("Cash plus worst portfolio outcome is %s, no bet is safe", worst_case)
        return 0.0

    x_cash = (cash + expected_value(pmf)) * edge / odds

    def marginal_log_wealth(x: float) -> float:
        return sum(
            prob * (p_win * odds / (cash + payout + x * odds) - q_win / (cash + payout - x))
            for payout, prob in pmf.items()
        )

    # Endpoints are never evaluated: the upper one is a pole
    result = find_root(
        marginal_log_wealth,
        0.0,
        worst_case,
        tolerance=x_cash * _RISK_TOLERANCE,
        max_iterations=_RISK_MAX_ITERATIONS,
        increasing=False,
    )
    factor = clamp(result.root / x_cash, 0.0, 1.0)
    logger.debug("Portfolio risk factor %s (x_port=%s, x_cash=%s)", factor, result.root, x_cash)
    return factor


def _bracket_tolerance(amount: float, iterations: int) -> float:
    """Return a tolerance reached after exactly ``iterations`` halvings of ``[0, amount]``."""
    return 1.5 * amount / 2 ** (iterations + 1)


def calculate_full_kelly_bet(  # noqa: PLR0913
    estimated_prob: float,
    deference_factor: float,
    market_model: MarketModel,
    user_model: UserModel,
    *,
    iterations: int = DEFAULT_ITERATIONS,
    excluding_market_id: str | None = None,
) -> BetRecommendation:
    """Return the Kelly stake accounting for price impact and portfolio risk.

    Bisect over ``[0, naive amount]``. At each midpoint, simulate the trade
    to get the average execution price ``bet / shares`` and recompute the
    naive stake at that price. A recomputed stake on the other side (the
    bet pushed the market past the estimate) counts as negative. If the
    recomputed stake exceeds the midpoint the bracket moves up, otherwise
    down.

    Args:
        estimated_prob: Own estimate of the YES probability, in (0, 1).
        deference_factor: Weight on the own estimate, in [0, 1].
        market_model: Snapshot of the market to bet on.
        user_model: Snapshot of the bettor's portfolio.
        iterations: Number of bisection steps.
        excluding_market_id: Contract whose position the risk factor ignores.

    Returns:
        The stake (midpoint of the final bracket), its side, and the shares
        and post-trade probability of betting exactly that stake.

    Raises:
        InvalidProbabilityError: If the market or estimated probability is
            outside (0, 1).

    """
    market_prob = market_model.probability
    factor = portfolio_risk_factor(
        market_prob,
        estimated_prob,
        deference_factor,
        user_model,
        excluding_market_id=excluding_market_id,
    )
    bankroll = user_model.effective_bankroll * factor
    naive = calculate_naive_kelly_bet(market_prob, estimated_prob, deference_factor, bankroll)
    outcome = naive.outcome
    if naive.amount <= 0:
        return BetRecommendation(amount=0.0, outcome=outcome, probability_after=market_prob)

    def recomputed_stake(bet: float) -> float:
        shares = market_model.simulate_bet(outcome, bet).shares
        if shares <= 0:
            return 0.0
        average_price = bet / shares if outcome is Outcome.YES else 1 - bet / shares
        effective_prob = clamp(average_price, _PROBABILITY_MARGIN, 1 - _PROBABILITY_MARGIN)
        kelly = calculate_naive_kelly_bet(
            effective_prob, estimated_prob, deference_factor, bankroll
        )
        logger.debug(
            "Stake %s executes at %s, Kelly stake there %s %s",
            bet,
            effective_prob,
            kelly.outcome.value,
            kelly.amount,
        )
        return kelly.amount if kelly.outcome is outcome else -kelly.amount

    result = find_fixed_point(
        recomputed_stake,
        0.0,
        naive.amount,
        tolerance=_bracket_tolerance(naive.amount, iterations),
        max_iterations=iterations,
        increasing=False,
    )
    simulated = market_model.simulate_bet(outcome, result.root)
    return BetRecommendation(
        amount=result.root,
        outcome=outcome,
        shares=simulated.shares,
        probability_after=simulated.probability_after,
    )


def recommend_bet(  # noqa: PLR0913
    estimated_prob: float,
    deference_factor: float,
    market_model: MarketModel,
    user_model: UserModel,
    *,
    strategy: KellyStrategy | str = KellyStrategy.FULL,
    iterations: int = DEFAULT_ITERATIONS,
    excluding_market_id: str | None = None,
) -> BetRecommendation:
    """Recommend a stake and side for ``estimated_prob`` on ``market_model``.

    Args:
        estimated_prob: Own estimate of the YES probability, in (0, 1).
        deference_factor: Weight on the own estimate, in [0, 1].
        market_model: Snapshot of the market to bet on.
        user_model: Snapshot of the bettor's portfolio.
        strategy: ``naive`` (no price impact) or ``full``.
        iterations: Bisection steps for the full solver.
        excluding_market_id: Contract whose position the risk factor ignores.

    Returns:
        The recommended bet with its simulated execution.

    Raises:
        InvalidProbabilityError: If the market or estimated probability is
            outside (0, 1).
        ValueError: If ``strategy`` is unknown or ``deference_factor`` is
            outside [0, 1].

    """
    strategy = KellyStrategy(strategy)
    if strategy is KellyStrategy.FULL:
        recommendation = calculate_full_kelly_bet(
            estimated_prob,
            deference_factor,
            market_model,
            user_model,
            iterations=iterations,
            excluding_market_id=excluding_market_id,
        )
    else:
        naive = calculate_naive_kelly_bet(
            market_model.probability,
            estimated_prob,
            deference_factor,
            max(user_model.effective_bankroll, 0.0),
        )
        simulated = market_model.simulate_bet(naive.outcome, naive.amount)
        recommendation = BetRecommendation(
            amount=naive.amount,
            outcome=naive.outcome,
            shares=simulated.shares,
            probability_after=simulated.probability_after,
        )

    logger.info(
        "Recommend %s %.2f on %s (%s strategy, probability after %.4f)",
        recommendation.outcome.value,
        recommendation.amount,
        market_model.slug or "market",
        strategy.value,
        recommendation.probability_after,
    )
    return recommendation
