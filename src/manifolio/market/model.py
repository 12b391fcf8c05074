"""Immutable market snapshot answering "what if I bet X on outcome O" queries.

``MarketModel`` bundles a market's pool state, its open limit orders and
the balances of the users who placed them. Every query runs the matching
engine against the snapshot and returns derived values; the snapshot
itself is never modified, so one model can serve any number of
simulations, including concurrent ones.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from manifolio.core.floats import validate_probability
from manifolio.core.models import CpmmState, LimitOrder, Outcome
from manifolio.cpmm.matching import BetInfo, get_binary_cpmm_bet_info
from manifolio.cpmm.pricing import DEFAULT_FEE_SCHEDULE, FeeSchedule, probability


@dataclass(frozen=True)
class SimulatedBet:
    """Result of simulating a market order.

    Args:
        probability_after: Market YES probability after the bet.
        shares: Shares the bettor receives.

    """

    probability_after: float
    shares: float


class MarketModel:
    """Read-only view of a binary CPMM market used for bet simulation.

    Filled and cancelled orders are dropped on construction; the
    remaining orders and the balances are stored in immutable containers.

    Args:
        state: Pool state of the market.
        orders: Limit orders on the market (any status).
        balance_by_user_id: Current balance of every user with an open order.
        slug: Optional market identifier.
        total_liquidity: Total liquidity of the market, for reporting.
        fee_schedule: Fee rates applied to pool purchases.

    """

    def __init__(  # noqa: PLR0913
        self,
        state: CpmmState,
        orders: Iterable[LimitOrder] = (),
        balance_by_user_id: Mapping[str, float] | None = None,
        *,
        slug: str = "",
        total_liquidity: float = 0.0,
        fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
    ) -> None:
        """Initialize the model from a fetched market snapshot."""
        self._state = state
        self._orders = tuple(order for order in orders if order.is_open)
        self._balances = MappingProxyType(dict(balance_by_user_id or {}))
        self._slug = slug
        self._total_liquidity = total_liquidity
        self._fee_schedule = fee_schedule

    @property
    def state(self) -> CpmmState:
        """Return the pool state."""
        return self._state

    @property
    def orders(self) -> tuple[LimitOrder, ...]:
        """Return the open limit orders."""
        return self._orders

    @property
    def balance_by_user_id(self) -> Mapping[str, float]:
        """Return the read-only maker balances."""
        return self._balances

    @property
    def slug(self) -> str:
        """Return the market identifier."""
        return self._slug

    @property
    def probability(self) -> float:
        """Return the current YES probability.

        Raises:
            InvalidProbabilityError: If the pool implies a probability of
                exactly 0 or 1, or NaN.

        """
        return validate_probability(
            probability(self._state.pool, self._state.p),
            name="market probability",
        )

    def get_bet_info(
        self,
        outcome: Outcome,
        amount: float,
        limit_prob: float | None = None,
    ) -> BetInfo:
        """Run the matching engine for a bet of ``amount`` on ``outcome``.

        Args:
            outcome: Side to buy.
            amount: Amount to spend.
            limit_prob: Optional limit probability for the bet.

        Returns:
            The full ``BetInfo`` for the simulated bet.

        """
        return get_binary_cpmm_bet_info(
            outcome,
            amount,
            self._state,
            limit_prob,
            self._orders,
            self._balances,
            total_liquidity=self._total_liquidity,
            schedule=self._fee_schedule,
        )

    def simulate_bet(self, outcome: Outcome, amount: float) -> SimulatedBet:
        """Return the post-trade probability and shares for a market order."""
        info = self.get_bet_info(outcome, amount)
        return SimulatedBet(probability_after=info.prob_after, shares=info.shares)
