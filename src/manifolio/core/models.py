"""Core data models shared across the manifolio kernel.

Define the immutable value objects (Pool, CpmmState, Fees, fills,
LimitOrder, Position, BetRecommendation) that flow between the CPMM
pricing primitives, the order-matching engine, the market and user
models, and the Kelly optimizer. Every trade simulation returns fresh
instances; nothing here is mutated once built.
"""

from dataclasses import dataclass, field
from enum import Enum

from manifolio.core.floats import is_open_probability


class Outcome(Enum):
    """Side of a binary market: YES or NO."""

    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Outcome":
        """Return the other side of the market."""
        return Outcome.NO if self is Outcome.YES else Outcome.YES


@dataclass(frozen=True)
class Pool:
    """Share counts held by the automated market maker for each outcome.

    Only ``YES`` and ``NO`` are legal sides, so the pool is a fixed
    two-field structure rather than an open mapping.
    """

    yes: float
    no: float

    def __post_init__(self) -> None:
        """Validate that both sides are non-negative."""
        if self.yes < 0 or self.no < 0:
            msg = f"pool sides must be non-negative, got YES={self.yes} NO={self.no}"
            raise ValueError(msg)

    def get(self, outcome: Outcome) -> float:
        """Return the share count held for ``outcome``."""
        return self.yes if outcome is Outcome.YES else self.no


@dataclass(frozen=True)
class Fees:
    """Fees charged on a single purchase, split by recipient.

    All rates are currently zero, but the liquidity fee is still routed
    back into the pool as new liquidity after every pool fill.
    """

    creator_fee: float = 0.0
    platform_fee: float = 0.0
    liquidity_fee: float = 0.0

    @property
    def total(self) -> float:
        """Return the sum of all fee components."""
        return self.creator_fee + self.platform_fee + self.liquidity_fee

    def __add__(self, other: "Fees") -> "Fees":
        """Return the component-wise sum of two fee records."""
        return Fees(
            creator_fee=self.creator_fee + other.creator_fee,
            platform_fee=self.platform_fee + other.platform_fee,
            liquidity_fee=self.liquidity_fee + other.liquidity_fee,
        )


NO_FEES = Fees()


@dataclass(frozen=True)
class CpmmState:
    """Pool state of a weighted constant-product market maker.

    The invariant is ``YES**p * NO**(1 - p) = k``. ``k`` is derived from
    the pool and never stored.

    Args:
        pool: Current share counts for each outcome.
        p: Fixed weighting exponent of the invariant, in (0, 1).

    Raises:
        ValueError: If ``p`` is outside the open interval (0, 1).

    """

    pool: Pool
    p: float

    def __post_init__(self) -> None:
        """Validate the weighting exponent."""
        if not is_open_probability(self.p):
            msg = f"p must be between 0 and 1 (exclusive), got {self.p}"
            raise ValueError(msg)

    @classmethod
    def from_probability(
        cls,
        probability: float,
        liquidity: float,
        p: float = 0.5,
    ) -> "CpmmState":
        """Build a pool that realises the given probability and liquidity.

        Invert ``probability = p*NO / ((1-p)*YES + p*NO)`` and
        ``liquidity = YES**p * NO**(1-p)``: the ratio
        ``YES / NO = p*(1-prob) / ((1-p)*prob)`` fixes the shape of the
        pool and the liquidity fixes its scale.

        Args:
            probability: Target market probability, in (0, 1).
            liquidity: Target invariant ``k``, must be positive.
            p: Weighting exponent, in (0, 1).

        Returns:
            A ``CpmmState`` with the requested probability and liquidity.

        Raises:
            ValueError: If any argument is out of range.

        """
        if not is_open_probability(probability):
            msg = f"probability must be between 0 and 1 (exclusive), got {probability}"
            raise ValueError(msg)
        if liquidity <= 0:
            msg = f"liquidity must be positive, got {liquidity}"
            raise ValueError(msg)
        if not is_open_probability(p):
            msg = f"p must be between 0 and 1 (exclusive), got {p}"
            raise ValueError(msg)
        ratio = p * (1 - probability) / ((1 - p) * probability)
        no = liquidity / ratio**p
        return cls(pool=Pool(yes=ratio * no, no=no), p=p)


@dataclass(frozen=True)
class PoolFill:
    """Portion of a taker order filled against the automated pool."""

    amount: float
    shares: float
    timestamp: int


@dataclass(frozen=True)
class OrderFill:
    """Portion of an order filled against a counterparty limit order.

    ``matched_order_id`` names the other side of the match. Maker-side
    fills use ``TAKER_ORDER_ID`` because the incoming order has no id yet.
    """

    matched_order_id: str
    amount: float
    shares: float
    timestamp: int


TAKER_ORDER_ID = "taker"

Fill = PoolFill | OrderFill


def _empty_fills() -> tuple[Fill, ...]:
    """Create an empty fills tuple."""
    return ()


@dataclass(frozen=True)
class LimitOrder:
    """Resting limit order on a binary market.

    The order buys ``outcome`` at ``limit_prob`` or better until
    ``order_amount`` has been spent. Filled or cancelled orders never take
    part in matching again.

    Args:
        id: Unique order identifier.
        user_id: Owner of the order.
        outcome: Side the order buys.
        order_amount: Total amount the order may spend.
        limit_prob: Probability the order buys at, in (0, 1).
        amount_filled: Amount already spent.
        created_time: Creation time in epoch milliseconds, for time priority.
        is_filled: Whether the order has been completely filled.
        is_cancelled: Whether the order has been cancelled.
        fills: Fills recorded against this order so far.

    Raises:
        ValueError: If the amounts or limit probability are inconsistent.

    """

    id: str
    user_id: str
    outcome: Outcome
    order_amount: float
    limit_prob: float
    amount_filled: float = 0.0
    created_time: int = 0
    is_filled: bool = False
    is_cancelled: bool = False
    fills: tuple[Fill, ...] = field(default_factory=_empty_fills)

    def __post_init__(self) -> None:
        """Validate the limit probability and filled amount."""
        if not is_open_probability(self.limit_prob):
            msg = f"limit_prob must be between 0 and 1 (exclusive), got {self.limit_prob}"
            raise ValueError(msg)
        if self.amount_filled > self.order_amount:
            msg = (
                f"amount_filled ({self.amount_filled}) cannot exceed "
                f"order_amount ({self.order_amount})"
            )
            raise ValueError(msg)

    @property
    def is_open(self) -> bool:
        """Return whether the order can still be matched."""
        return not (self.is_filled or self.is_cancelled)

    @property
    def remaining_amount(self) -> float:
        """Return the amount the order may still spend."""
        return self.order_amount - self.amount_filled


@dataclass(frozen=True)
class Position:
    """Existing bet abstracted to a single binary payout.

    Pays ``payout`` with probability ``probability`` and nothing
    otherwise. ``loan`` and ``contract_id`` are bookkeeping fields that the
    distribution maths ignores.
    """

    probability: float
    payout: float
    loan: float = 0.0
    contract_id: str | None = None

    def __post_init__(self) -> None:
        """Validate probability and payout ranges."""
        if not (0 <= self.probability <= 1):
            msg = f"probability must be between 0 and 1, got {self.probability}"
            raise ValueError(msg)
        if self.payout < 0:
            msg = f"payout must be non-negative, got {self.payout}"
            raise ValueError(msg)

    @property
    def expected_value(self) -> float:
        """Return ``probability * payout``."""
        return self.probability * self.payout


@dataclass(frozen=True)
class BetRecommendation:
    """Recommended stake and direction, with the simulated execution.

    Args:
        amount: Amount to bet (non-negative).
        outcome: Side to bet on.
        shares: Shares received when betting ``amount``.
        probability_after: Market probability after the bet executes.

    """

    amount: float
    outcome: Outcome
    shares: float = 0.0
    probability_after: float = 0.0
