"""Payout distributions for bundles of independent binary positions.

Each position pays ``payout`` with probability ``probability`` and
nothing otherwise. The joint payout distribution of a bundle is returned
as a probability mass function (PMF): a dict mapping total payout to
probability. Three construction strategies are available:

- ``cartesian``: enumerate all ``2**n`` win/lose combinations. Exact but
  exponential in the number of positions.
- ``convolution``: fold positions in one at a time, merging equal
  payouts as it goes. Exact, and usually far smaller than the full
  enumeration when payouts repeat.
- ``monte-carlo``: sample every position independently with a seeded
  generator and bucket the summed payouts by frequency.
"""

import itertools
import logging
import math
import random
from bisect import bisect_left
from collections import defaultdict
from collections.abc import Callable, Sequence
from enum import Enum

from manifolio.core.exceptions import UnsupportedMethodError
from manifolio.core.models import Position

logger = logging.getLogger(__name__)

Pmf = dict[float, float]
Cdf = dict[float, float]

DEFAULT_SAMPLES = 50_000
DEFAULT_SEED = 42


class PmfMethod(Enum):
    """Strategy used to build a payout distribution."""

    CARTESIAN = "cartesian"
    CONVOLUTION = "convolution"
    MONTE_CARLO = "monte-carlo"


def _coerce_method(method: PmfMethod | str, operation: str) -> PmfMethod:
    """Resolve a method name, failing loudly on unknown strategies."""
    if isinstance(method, PmfMethod):
        return method
    try:
        return PmfMethod(method)
    except ValueError as exc:
        raise UnsupportedMethodError(str(method), operation) from exc


def _outcomes(positions: Sequence[Position]) -> list[tuple[float, float]]:
    """Return ``(payout, probability)`` for every win/lose combination."""
    legs = [
        ((0.0, 1 - position.probability), (position.payout, position.probability))
        for position in positions
    ]
    return [
        (
            math.fsum(payout for payout, _ in combination),
            math.prod(prob for _, prob in combination),
        )
        for combination in itertools.product(*legs)
    ]


def _cartesian_pmf(positions: Sequence[Position]) -> Pmf:
    pmf: defaultdict[float, float] = defaultdict(float)
    for payout, prob in _outcomes(positions):
        pmf[payout] += prob
    return dict(pmf)


def _convolution_pmf(positions: Sequence[Position]) -> Pmf:
    pmf: Pmf = {0.0: 1.0}
    for position in positions:
        combined: defaultdict[float, float] = defaultdict(float)
        for payout, prob in pmf.items():
            combined[payout] += prob * (1 - position.probability)
            combined[payout + position.payout] += prob * position.probability
        pmf = dict(combined)
    return pmf


def _monte_carlo_pmf(positions: Sequence[Position], samples: int, seed: int) -> Pmf:
    """Estimate the PMF by independent sampling with a seeded generator.

    Args:
        positions: Positions to sample.
        samples: Number of simulated portfolios.
        seed: Seed for reproducible draws.

    Returns:
        Observed payout frequencies divided by ``samples``.

    """
    if samples <= 0:
        msg = f"samples must be positive, got {samples}"
        raise ValueError(msg)
    rng = random.Random(seed)  # noqa: S311
    counts: defaultdict[float, int] = defaultdict(int)
    for _ in range(samples):
        payout = 0.0
        for position in positions:
            if rng.random() < position.probability:
                payout += position.payout
        counts[payout] += 1
    return {payout: count / samples for payout, count in counts.items()}


def compute_payout_distribution(
    positions: Sequence[Position],
    method: PmfMethod | str = PmfMethod.CARTESIAN,
    *,
    samples: int = DEFAULT_SAMPLES,
    seed: int = DEFAULT_SEED,
) -> Pmf:
    """Build the joint payout PMF of independent binary positions.

    Args:
        positions: Positions making up the portfolio.
        method: Construction strategy, a ``PmfMethod`` or its string value.
        samples: Number of draws for the Monte Carlo strategy.
        seed: Seed for the Monte Carlo strategy.

    Returns:
        Mapping of total payout to probability, summing to 1.

    Raises:
        UnsupportedMethodError: If ``method`` names no known strategy.

    """
    resolved = _coerce_method(method, "compute_payout_distribution")
    logger.debug("Building payout PMF for %d positions via %s", len(positions), resolved.value)
    if resolved is PmfMethod.MONTE_CARLO:
        return _monte_carlo_pmf(positions, samples, seed)
    if resolved is PmfMethod.CONVOLUTION:
        return _convolution_pmf(positions)
    return _cartesian_pmf(positions)


def integrate(f: Callable[[float], float], pmf: Pmf) -> float:
    """Return the expectation of ``f(payout)`` under ``pmf``."""
    return math.fsum(f(payout) * prob for payout, prob in pmf.items())


def expected_value(pmf: Pmf) -> float:
    """Return the mean payout of ``pmf``."""
    return integrate(lambda payout: payout, pmf)


def variance(pmf: Pmf) -> float:
    """Return the variance of the payout under ``pmf``."""
    mean = expected_value(pmf)
    return integrate(lambda payout: (payout - mean) ** 2, pmf)


def cumulative_distribution(
    positions: Sequence[Position],
    method: PmfMethod | str = PmfMethod.CARTESIAN,
) -> Cdf:
    """Return the cumulative payout distribution of ``positions``.

    Combinations are sorted by payout and their probabilities prefix
    summed, so keys are strictly increasing and the last value is 1.
    Only the exact enumeration is supported.

    Args:
        positions: Positions making up the portfolio.
        method: Construction strategy; must be ``cartesian``.

    Returns:
        Mapping of payout to probability of a payout at most that large.

    Raises:
        UnsupportedMethodError: For any strategy other than ``cartesian``.

    """
    resolved = _coerce_method(method, "cumulative_distribution")
    if resolved is not PmfMethod.CARTESIAN:
        raise UnsupportedMethodError(resolved.value, "cumulative_distribution")

    cdf: Cdf = {}
    cumulative = 0.0
    for payout, prob in sorted(_outcomes(positions)):
        cumulative += prob
        cdf[payout] = cumulative
    return cdf


def quantile(cdf: Cdf, target_prob: float) -> float:
    """Return the smallest payout whose cumulative probability reaches ``target_prob``.

    Feeding uniform draws through this function samples from the
    distribution described by ``cdf``.

    Args:
        cdf: Cumulative distribution as returned by ``cumulative_distribution``.
        target_prob: Cumulative probability to look up, in [0, 1].

    Returns:
        The matching payout. Targets above the last cumulative value map
        to the largest payout.

    Raises:
        ValueError: If ``cdf`` is empty.

    """
    if not cdf:
        msg = "cannot take a quantile of an empty distribution"
        raise ValueError(msg)
    payouts = sorted(cdf)
    cumulative = [cdf[payout] for payout in payouts]
    index = min(bisect_left(cumulative, target_prob), len(payouts) - 1)
    return payouts[index]
