"""Pricing primitives for the weighted binary constant-product market maker.

The pool holds ``YES`` and ``NO`` shares and preserves the invariant
``YES**p * NO**(1 - p) = k``. Buying an outcome with ``bet`` mana mints
``bet`` of each share into the pool and hands the trader enough of the
chosen outcome to restore ``k``. All functions here are pure: they take a
pool state and return derived values or a fresh state.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass

from manifolio.core.models import CpmmState, Fees, Outcome, Pool

PLATFORM_FEE = 0.0
CREATOR_FEE = 0.0
LIQUIDITY_FEE = 0.0

_INITIAL_SEARCH_BOUND = 10.0
_SEARCH_GROWTH = 10.0
_MAX_SEARCH_STEPS = 30


@dataclass(frozen=True)
class FeeSchedule:
    """Fee rates applied to the notional of every pool purchase.

    Rates are charged on ``bet * (1 - prob)`` for YES purchases and
    ``bet * prob`` for NO purchases, where ``prob`` is the probability
    after the bet before fees.
    """

    platform_fee: float = PLATFORM_FEE
    creator_fee: float = CREATOR_FEE
    liquidity_fee: float = LIQUIDITY_FEE


DEFAULT_FEE_SCHEDULE = FeeSchedule()


@dataclass(frozen=True)
class LiquidityDeposit:
    """Result of depositing liquidity into both sides of a pool."""

    pool: Pool
    p: float
    liquidity: float


@dataclass(frozen=True)
class Purchase:
    """Result of buying one outcome from the pool."""

    shares: float
    state: CpmmState
    fees: Fees


def probability(pool: Pool, p: float) -> float:
    """Return the YES probability implied by ``pool`` and exponent ``p``."""
    return p * pool.no / ((1 - p) * pool.yes + p * pool.no)


def liquidity(pool: Pool, p: float) -> float:
    """Return the invariant ``k = YES**p * NO**(1 - p)``."""
    return pool.yes**p * pool.no ** (1 - p)


def shares_for_bet(pool: Pool, p: float, bet: float, outcome: Outcome) -> float:
    """Return the shares received for betting ``bet`` on ``outcome``, before fees.

    Solve ``(y + b - s)**p * (n + b)**(1 - p) = k`` for ``s`` when buying
    YES, and the mirrored equation when buying NO. The solution is written
    relative to the current pool so every power has a base in (0, 1].

    Args:
        pool: Current pool.
        p: Weighting exponent.
        bet: Amount bet, must be non-negative.
        outcome: Outcome being bought.

    Returns:
        Number of shares handed to the trader.

    Raises:
        ValueError: If ``bet`` is negative or NaN, or the pool is empty.

    """
    if bet == 0:
        return 0.0
    if math.isnan(bet) or bet < 0:
        msg = f"bet must be a non-negative number, got {bet}"
        raise ValueError(msg)
    if pool.yes <= 0 or pool.no <= 0:
        msg = f"cannot trade against an empty pool: {pool}"
        raise ValueError(msg)
    y, n = pool.yes, pool.no
    if outcome is Outcome.YES:
        return y + bet - y * (n / (n + bet)) ** ((1 - p) / p)
    return n + bet - n * (y / (y + bet)) ** (p / (1 - p))


def add_liquidity(pool: Pool, p: float, amount: float) -> LiquidityDeposit:
    """Deposit ``amount`` into both sides while holding probability constant.

    The exponent is recomputed so that the post-deposit pool implies the
    same probability as before. Used to reinject collected liquidity fees.

    Args:
        pool: Pool before the deposit.
        p: Exponent before the deposit.
        amount: Amount added to each side.

    Returns:
        The new pool, new exponent, and the increase in liquidity.

    """
    prob = probability(pool, p)
    y, n = pool.yes, pool.no
    numerator = prob * (amount + y)
    denominator = amount - n * (prob - 1) + prob * y
    new_p = numerator / denominator

    new_pool = Pool(yes=y + amount, no=n + amount)
    delta = liquidity(new_pool, new_p) - liquidity(pool, new_p)
    return LiquidityDeposit(pool=new_pool, p=new_p, liquidity=delta)


def _pool_after_bet(pool: Pool, outcome: Outcome, bet: float, shares: float, fee: float) -> Pool:
    """Return the pool after minting ``bet`` (plus ``fee``) and paying out ``shares``."""
    if outcome is Outcome.YES:
        return Pool(yes=pool.yes - shares + bet + fee, no=pool.no + bet + fee)
    return Pool(yes=pool.yes + bet + fee, no=pool.no - shares + bet + fee)


def probability_after_bet_before_fees(state: CpmmState, outcome: Outcome, bet: float) -> float:
    """Return the YES probability after a fee-free bet of ``bet`` on ``outcome``."""
    shares = shares_for_bet(state.pool, state.p, bet, outcome)
    return probability(_pool_after_bet(state.pool, outcome, bet, shares, 0.0), state.p)


def compute_fees(
    state: CpmmState,
    bet: float,
    outcome: Outcome,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> tuple[float, Fees]:
    """Split ``bet`` into the amount that reaches the pool and the fees charged.

    Args:
        state: Pool state before the bet.
        bet: Gross bet amount.
        outcome: Outcome being bought.
        schedule: Fee rates to apply.

    Returns:
        Tuple of ``(remaining_bet, fees)``.

    """
    prob = probability_after_bet_before_fees(state, outcome, bet)
    bet_p = 1 - prob if outcome is Outcome.YES else prob
    fees = Fees(
        creator_fee=schedule.creator_fee * bet_p * bet,
        platform_fee=schedule.platform_fee * bet_p * bet,
        liquidity_fee=schedule.liquidity_fee * bet_p * bet,
    )
    return bet - fees.total, fees


def calculate_purchase(
    state: CpmmState,
    bet: float,
    outcome: Outcome,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> Purchase:
    """Buy ``outcome`` from the pool and return the shares and new state.

    Fees are deducted first, the remainder is traded against the pool,
    and the liquidity fee is deposited back as fresh liquidity.

    Args:
        state: Pool state before the purchase.
        bet: Gross bet amount.
        outcome: Outcome being bought.
        schedule: Fee rates to apply.

    Returns:
        A ``Purchase`` with the shares received, the new state and the fees.

    """
    remaining_bet, fees = compute_fees(state, bet, outcome, schedule)
    shares = shares_for_bet(state.pool, state.p, remaining_bet, outcome)
    fee = fees.liquidity_fee
    post_bet_pool = _pool_after_bet(state.pool, outcome, remaining_bet, shares, fee)
    deposit = add_liquidity(post_bet_pool, state.p, fee)
    return Purchase(shares=shares, state=CpmmState(pool=deposit.pool, p=deposit.p), fees=fees)


def outcome_probability_after_bet(
    state: CpmmState,
    outcome: Outcome,
    bet: float,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> float:
    """Return the probability of ``outcome`` itself after buying it with ``bet``."""
    purchase = calculate_purchase(state, bet, outcome, schedule)
    prob = probability(purchase.state.pool, state.p)
    return 1 - prob if outcome is Outcome.NO else prob


def binary_search(lower: float, upper: float, comparator: Callable[[float], float]) -> float:
    """Bisect ``[lower, upper]`` until ``comparator`` hits zero or precision runs out.

    ``comparator`` must be increasing: positive means the midpoint is too
    large, negative means too small.

    Args:
        lower: Lower end of the search range.
        upper: Upper end of the search range.
        comparator: Signed distance of a candidate from the target.

    Returns:
        The last midpoint evaluated.

    """
    while True:
        mid = lower + (upper - lower) / 2
        # Adjacent floats: no further precision available
        if mid in (lower, upper):
            return mid
        comparison = comparator(mid)
        if comparison == 0:
            return mid
        if comparison > 0:
            upper = mid
        else:
            lower = mid


def amount_to_reach_probability(
    state: CpmmState,
    target_prob: float,
    outcome: Outcome,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> float:
    """Return the bet on ``outcome`` that moves the YES probability to ``target_prob``.

    There is no closed form, so first grow an upper bound by factors of ten
    until a bet of that size overshoots the target, then bisect between zero
    and that bound. The search is capped, so an unreachable target returns
    the largest bound tried.

    Args:
        state: Pool state before the bet.
        target_prob: Desired YES probability after the bet.
        outcome: Outcome being bought.
        schedule: Fee rates to apply.

    Returns:
        The bet size, or ``math.inf`` if ``target_prob`` is NaN or outside (0, 1).

    """
    if math.isnan(target_prob) or target_prob <= 0 or target_prob >= 1:
        return math.inf
    target = 1 - target_prob if outcome is Outcome.NO else target_prob

    max_guess = _INITIAL_SEARCH_BOUND
    for _ in range(_MAX_SEARCH_STEPS):
        max_guess *= _SEARCH_GROWTH
        if outcome_probability_after_bet(state, outcome, max_guess, schedule) >= target:
            break
    else:
        return max_guess

    return binary_search(
        0.0,
        max_guess,
        lambda amount: outcome_probability_after_bet(state, outcome, amount, schedule) - target,
    )
