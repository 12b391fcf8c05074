"""User portfolio snapshot and its risk-adjusted bankroll.

A ``UserModel`` is built once per recommendation request from a fetched
snapshot of the user's balance, outstanding loans and filled positions.
The payout distribution of the positions is what the Kelly optimizer
uses to fold existing risk into the bankroll.
"""

import logging
from collections.abc import Iterable

from manifolio.core.models import Position
from manifolio.portfolio.distribution import (
    DEFAULT_SAMPLES,
    DEFAULT_SEED,
    Pmf,
    PmfMethod,
    compute_payout_distribution,
    expected_value,
)

logger = logging.getLogger(__name__)

DEFAULT_EXACT_POSITION_LIMIT = 12

_ALL_POSITIONS = ""


class UserModel:
    """Balance, loans and filled positions of one user.

    Payout distributions are computed lazily and memoised per excluded
    market; the snapshot data itself never changes.

    Args:
        balance: Current cash balance.
        positions: Filled positions on other markets.
        loans: Outstanding loans. Defaults to the sum of per-position loans.
        username: Optional user identifier.
        exact_position_limit: Largest portfolio enumerated exactly; larger
            portfolios fall back to Monte Carlo sampling.
        samples: Draws used by the Monte Carlo fallback.
        seed: Seed used by the Monte Carlo fallback.

    """

    def __init__(  # noqa: PLR0913
        self,
        balance: float,
        positions: Iterable[Position] = (),
        loans: float | None = None,
        *,
        username: str = "",
        exact_position_limit: int = DEFAULT_EXACT_POSITION_LIMIT,
        samples: int = DEFAULT_SAMPLES,
        seed: int = DEFAULT_SEED,
    ) -> None:
        """Initialize the model from a fetched user snapshot."""
        self._balance = balance
        self._positions = tuple(positions)
        self._loans = (
            sum(position.loan for position in self._positions) if loans is None else loans
        )
        self._username = username
        self._exact_position_limit = exact_position_limit
        self._samples = samples
        self._seed = seed
        self._pmf_cache: dict[str, Pmf] = {}

    @property
    def balance(self) -> float:
        """Return the cash balance."""
        return self._balance

    @property
    def loans(self) -> float:
        """Return the outstanding loans."""
        return self._loans

    @property
    def positions(self) -> tuple[Position, ...]:
        """Return the filled positions."""
        return self._positions

    @property
    def username(self) -> str:
        """Return the user identifier."""
        return self._username

    @property
    def balance_after_loans(self) -> float:
        """Return ``balance - loans``."""
        return self._balance - self._loans

    @property
    def portfolio_expected_value(self) -> float:
        """Return the expected payout of all filled positions."""
        return expected_value(self.portfolio_pmf())

    @property
    def effective_bankroll(self) -> float:
        """Return ``balance - loans`` plus the expected portfolio payout."""
        return self.balance_after_loans + self.portfolio_expected_value

    def _method_for(self, count: int) -> PmfMethod:
        if count > self._exact_position_limit:
            logger.warning(
                "Portfolio of %d positions exceeds exact limit %d, using Monte Carlo",
                count,
                self._exact_position_limit,
            )
            return PmfMethod.MONTE_CARLO
        return PmfMethod.CARTESIAN

    def portfolio_pmf(self, excluding_market_id: str | None = None) -> Pmf:
        """Return the payout PMF of the portfolio.

        Positions on ``excluding_market_id`` are left out, for when the user
        is betting on a market they already hold.

        Args:
            excluding_market_id: Contract whose position to ignore.

        Returns:
            Payout distribution of the remaining positions.

        """
        key = excluding_market_id or _ALL_POSITIONS
        if key not in self._pmf_cache:
            positions = [
                position
                for position in self._positions
                if not excluding_market_id or position.contract_id != excluding_market_id
            ]
            self._pmf_cache[key] = compute_payout_distribution(
                positions,
                self._method_for(len(positions)),
                samples=self._samples,
                seed=self._seed,
            )
        return self._pmf_cache[key]

    def get_position(self, contract_id: str) -> Position | None:
        """Return the position held on ``contract_id``, if any."""
        return next(
            (position for position in self._positions if position.contract_id == contract_id),
            None,
        )
