"""Epsilon-tolerant float comparisons and probability guards.

Fill completion, limit-price crossing and distribution sums are all
compared with a small absolute tolerance instead of exact equality so
that floating-point accumulation never produces spurious mismatches.
"""

import math

from manifolio.core.exceptions import InvalidProbabilityError

EPSILON = 1e-8


def floating_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    """Return whether ``a`` and ``b`` differ by less than ``epsilon``."""
    return abs(a - b) < epsilon


def floating_greater_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    """Return whether ``a >= b`` within ``epsilon``."""
    return a + epsilon >= b


def floating_lesser_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    """Return whether ``a <= b`` within ``epsilon``."""
    return a - epsilon <= b


def is_open_probability(value: float) -> bool:
    """Return whether ``value`` lies strictly inside (0, 1).

    NaN is rejected because every comparison against it is false.
    """
    return 0 < value < 1


def validate_probability(value: float, name: str = "probability") -> float:
    """Return ``value`` unchanged if it is a usable probability.

    Market-observed probabilities are never clamped: a value of exactly 0
    or 1, or NaN, is a configuration error.

    Args:
        value: Probability to check.
        name: Label used in the error message.

    Returns:
        The same value.

    Raises:
        InvalidProbabilityError: If ``value`` is not in (0, 1).

    """
    if math.isnan(value) or not is_open_probability(value):
        raise InvalidProbabilityError(value, name=name)
    return value


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp ``value`` into ``[lower, upper]``."""
    return min(max(value, lower), upper)
