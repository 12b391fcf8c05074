"""Bisection root finding over sync or async evaluators.

The search itself is a generator that yields the next point to evaluate
and receives the function value back. Two thin drivers feed it: one
calls a plain function, the other awaits a coroutine function. Either
way evaluations happen strictly one after another, since every bracket
update depends on the previous result.
"""

import logging
from collections.abc import Generator
from dataclasses import dataclass

from manifolio.core.protocols import AsyncEvaluator, Evaluator

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-6
DEFAULT_MAX_ITERATIONS = 100


@dataclass(frozen=True)
class RootResult:
    """Outcome of a bisection search.

    Args:
        root: Best estimate of the root (midpoint of the final bracket).
        iterations: Number of midpoint evaluations performed.
        converged: Whether the bracket shrank below the tolerance or an
            exact zero was hit before ``max_iterations`` ran out.

    """

    root: float
    iterations: int
    converged: bool


_Search = Generator[float, float, RootResult]


def _bisect(
    lower: float,
    upper: float,
    tolerance: float,
    max_iterations: int,
    increasing: bool | None,
) -> _Search:
    """Yield evaluation points and narrow the bracket from the values sent back.

    When ``increasing`` is ``None`` both endpoints are evaluated first to
    find the orientation of the function.
    """
    if lower > upper:
        lower, upper = upper, lower

    if increasing is None:
        at_lower = yield lower
        if at_lower == 0:
            return RootResult(root=lower, iterations=0, converged=True)
        at_upper = yield upper
        if at_upper == 0:
            return RootResult(root=upper, iterations=0, converged=True)
        if (at_lower > 0) == (at_upper > 0):
            logger.warning(
                "No sign change on [%s, %s]: f(lower)=%s f(upper)=%s",
                lower,
                upper,
                at_lower,
                at_upper,
            )
        increasing = at_upper > at_lower

    for iteration in range(1, max_iterations + 1):
        mid = (lower + upper) / 2
        value = yield mid
        logger.debug("Bisection step %d: x=%s f(x)=%s", iteration, mid, value)
        if value == 0:
            return RootResult(root=mid, iterations=iteration, converged=True)
        if (value > 0) == increasing:
            upper = mid
        else:
            lower = mid
        if (upper - lower) / 2 <= tolerance:
            return RootResult(root=(lower + upper) / 2, iterations=iteration, converged=True)

    root = (lower + upper) / 2
    logger.warning(
        "Bisection did not converge after %d iterations, returning %s",
        max_iterations,
        root,
    )
    return RootResult(root=root, iterations=max_iterations, converged=False)


def _run(search: _Search, f: Evaluator) -> RootResult:
    try:
        x = next(search)
        while True:
            x = search.send(f(x))
    except StopIteration as stop:
        return stop.value


async def _run_async(search: _Search, f: AsyncEvaluator) -> RootResult:
    try:
        x = next(search)
        while True:
            x = search.send(await f(x))
    except StopIteration as stop:
        return stop.value


def find_root(  # noqa: PLR0913
    f: Evaluator,
    lower: float,
    upper: float,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    increasing: bool | None = None,
) -> RootResult:
    """Find a root of ``f`` on ``[lower, upper]`` by bisection.

    ``f`` is assumed monotonic on the interval with a sign change. The
    search never raises on non-convergence: once ``max_iterations`` is
    exhausted it returns the midpoint of the final bracket.

    Args:
        f: Function to solve.
        lower: Lower end of the bracket.
        upper: Upper end of the bracket.
        tolerance: Maximum distance of the returned root from the true one.
        max_iterations: Maximum number of midpoint evaluations.
        increasing: Orientation of ``f``. When ``None`` it is detected by
            evaluating both endpoints.

    Returns:
        A ``RootResult`` with the root estimate and convergence details.

    """
    return _run(_bisect(lower, upper, tolerance, max_iterations, increasing), f)


async def find_root_async(  # noqa: PLR0913
    f: AsyncEvaluator,
    lower: float,
    upper: float,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    increasing: bool | None = None,
) -> RootResult:
    """Find a root of an async ``f`` on ``[lower, upper]`` by bisection.

    Identical to ``find_root`` except that each evaluation is awaited
    before the bracket is updated, so ``f`` may perform I/O.

    Args:
        f: Coroutine function to solve.
        lower: Lower end of the bracket.
        upper: Upper end of the bracket.
        tolerance: Maximum distance of the returned root from the true one.
        max_iterations: Maximum number of midpoint evaluations.
        increasing: Orientation of ``f``, detected from the endpoints when ``None``.

    Returns:
        A ``RootResult`` with the root estimate and convergence details.

    """
    return await _run_async(_bisect(lower, upper, tolerance, max_iterations, increasing), f)


def find_fixed_point(  # noqa: PLR0913
    g: Evaluator,
    lower: float,
    upper: float,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    increasing: bool | None = None,
) -> RootResult:
    """Find ``x`` with ``g(x) == x`` by bisecting on ``g(x) - x``.

    Args:
        g: Function whose fixed point is wanted.
        lower: Lower end of the bracket.
        upper: Upper end of the bracket.
        tolerance: Maximum distance of the returned point from the true one.
        max_iterations: Maximum number of midpoint evaluations.
        increasing: Orientation of ``g(x) - x``, detected when ``None``.

    Returns:
        A ``RootResult`` whose ``root`` is the fixed point estimate.

    """
    return find_root(
        lambda x: g(x) - x,
        lower,
        upper,
        tolerance,
        max_iterations,
        increasing=increasing,
    )
