"""Order-matching engine for binary CPMM markets with resting limit orders.

Simulate filling a taker order against a queue of opposing limit orders
and the automated pool. Orders are visited in price-time priority; at each
step the taker trades with whichever of the pool and the best remaining
order offers the better price, and pool fills stop exactly where the pool
price would cross the next order (or the taker's own limit). Nothing is
mutated: counterparty balances are tracked on a private copy and every
step produces a fresh ``CpmmState``.
"""

import logging
import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from manifolio.core.floats import (
    floating_equal,
    floating_greater_equal,
    floating_lesser_equal,
)
from manifolio.core.models import (
    NO_FEES,
    TAKER_ORDER_ID,
    CpmmState,
    Fees,
    Fill,
    LimitOrder,
    OrderFill,
    Outcome,
    PoolFill,
)
from manifolio.cpmm.pricing import (
    DEFAULT_FEE_SCHEDULE,
    FeeSchedule,
    amount_to_reach_probability,
    calculate_purchase,
    probability,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolMatch:
    """One step of a taker order matched against the pool."""

    taker: PoolFill
    state: CpmmState
    fees: Fees


@dataclass(frozen=True)
class OrderMatch:
    """One step of a taker order matched against a resting limit order."""

    order: LimitOrder
    maker: OrderFill
    taker: OrderFill


Match = PoolMatch | OrderMatch


@dataclass(frozen=True)
class FillResult:
    """Outcome of matching a taker order against the book and the pool.

    Args:
        taker_fills: Fills received by the taker, in execution order.
        maker_fills: Matches made against resting orders.
        total_fees: Fees accumulated over all pool fills.
        final_state: Pool state after the last fill.
        orders_to_cancel: Orders skipped because the maker could not pay.

    """

    taker_fills: tuple[Fill, ...]
    maker_fills: tuple[OrderMatch, ...]
    total_fees: Fees
    final_state: CpmmState
    orders_to_cancel: tuple[LimitOrder, ...]

    @property
    def amount(self) -> float:
        """Return the total amount the taker spent."""
        return sum(fill.amount for fill in self.taker_fills)

    @property
    def shares(self) -> float:
        """Return the total shares the taker received."""
        return sum(fill.shares for fill in self.taker_fills)


@dataclass(frozen=True)
class BetInfo:
    """Full description of a simulated bet on a binary CPMM market.

    Args:
        outcome: Side the taker bought.
        order_amount: Amount the taker asked to spend.
        amount: Amount actually spent.
        shares: Shares received.
        limit_prob: Taker limit probability, if any.
        is_filled: Whether ``amount`` matches ``order_amount``.
        fills: The taker's fills.
        prob_before: Market probability before the bet.
        prob_after: Market probability after the bet.
        fees: Fees charged.
        state: Pool state after the bet.
        new_total_liquidity: Total liquidity after fee reinjection.
        maker_fills: Matches made against resting orders.
        orders_to_cancel: Orders whose makers could not cover their side.

    """

    outcome: Outcome
    order_amount: float
    amount: float
    shares: float
    limit_prob: float | None
    is_filled: bool
    fills: tuple[Fill, ...]
    prob_before: float
    prob_after: float
    fees: Fees
    state: CpmmState
    new_total_liquidity: float
    maker_fills: tuple[OrderMatch, ...]
    orders_to_cancel: tuple[LimitOrder, ...]


def _now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return int(time.time() * 1000)


def sort_opposing_orders(orders: Iterable[LimitOrder], outcome: Outcome) -> list[LimitOrder]:
    """Return open orders on the other side of ``outcome`` in price-time priority.

    A YES taker is best served by the lowest limit probability, a NO taker
    by the highest; ties go to the earlier order.
    """
    opposing = [o for o in orders if o.outcome is not outcome and o.is_open]
    sign = 1 if outcome is Outcome.YES else -1
    return sorted(opposing, key=lambda o: (sign * o.limit_prob, o.created_time))


def _taker_price(order: LimitOrder, outcome: Outcome) -> float:
    """Return the price per share the taker pays when matching ``order``."""
    return order.limit_prob if outcome is Outcome.YES else 1 - order.limit_prob


def _pool_beats_limit(prob: float, limit_prob: float, outcome: Outcome) -> bool:
    """Return whether the pool has already moved past ``limit_prob`` for the taker."""
    if outcome is Outcome.YES:
        return floating_greater_equal(prob, limit_prob)
    return floating_lesser_equal(prob, limit_prob)


def compute_fill(  # noqa: PLR0913
    amount: float,
    outcome: Outcome,
    limit_prob: float | None,
    state: CpmmState,
    matched_order: LimitOrder | None,
    *,
    timestamp: int,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> Match | None:
    """Compute the next fill for a taker with ``amount`` left to spend.

    Trade against ``matched_order`` when the pool price has already reached
    its limit; otherwise buy from the pool up to the tighter of the order's
    limit and the taker's own limit.

    Args:
        amount: Amount the taker still has to spend.
        outcome: Side the taker buys.
        limit_prob: Taker limit probability, or ``None`` for a market order.
        state: Current pool state.
        matched_order: Best remaining opposing order, if any.
        timestamp: Timestamp recorded on the fills.
        schedule: Fee rates for pool purchases.

    Returns:
        The match to apply, or ``None`` when the taker's limit blocks both
        the pool and the order.

    """
    prob = probability(state.pool, state.p)

    if limit_prob is not None:
        if outcome is Outcome.YES:
            order_limit = matched_order.limit_prob if matched_order else 1.0
            blocked = floating_greater_equal(prob, limit_prob) and order_limit > limit_prob
        else:
            order_limit = matched_order.limit_prob if matched_order else 0.0
            blocked = floating_lesser_equal(prob, limit_prob) and order_limit < limit_prob
        if blocked:
            return None

    if matched_order is None or not _pool_beats_limit(prob, matched_order.limit_prob, outcome):
        return _fill_from_pool(
            amount, outcome, limit_prob, state, matched_order, timestamp, schedule
        )
    return _fill_from_order(amount, outcome, matched_order, timestamp)


def _fill_from_pool(  # noqa: PLR0913
    amount: float,
    outcome: Outcome,
    limit_prob: float | None,
    state: CpmmState,
    matched_order: LimitOrder | None,
    timestamp: int,
    schedule: FeeSchedule,
) -> PoolMatch:
    """Buy from the pool without crossing the next order or the taker's limit."""
    if matched_order is None:
        limit = limit_prob
    elif outcome is Outcome.YES:
        limit = min(matched_order.limit_prob, 1.0 if limit_prob is None else limit_prob)
    else:
        limit = max(matched_order.limit_prob, 0.0 if limit_prob is None else limit_prob)

    if limit is None:
        buy_amount = amount
    else:
        buy_amount = min(amount, amount_to_reach_probability(state, limit, outcome, schedule))

    purchase = calculate_purchase(state, buy_amount, outcome, schedule)
    logger.debug("Pool fill: %.6f for %.6f shares", buy_amount, purchase.shares)
    return PoolMatch(
        taker=PoolFill(amount=buy_amount, shares=purchase.shares, timestamp=timestamp),
        state=purchase.state,
        fees=purchase.fees,
    )


def _fill_from_order(
    amount: float,
    outcome: Outcome,
    order: LimitOrder,
    timestamp: int,
) -> OrderMatch:
    """Trade as many shares with ``order`` as both sides can pay for."""
    taker_price = _taker_price(order, outcome)
    maker_price = 1 - taker_price
    shares = min(amount / taker_price, order.remaining_amount / maker_price)
    return OrderMatch(
        order=order,
        maker=OrderFill(
            matched_order_id=TAKER_ORDER_ID,
            amount=shares * maker_price,
            shares=shares,
            timestamp=timestamp,
        ),
        taker=OrderFill(
            matched_order_id=order.id,
            amount=shares * taker_price,
            shares=shares,
            timestamp=timestamp,
        ),
    )


def compute_fills(  # noqa: PLR0913
    outcome: Outcome,
    bet_amount: float,
    state: CpmmState,
    limit_prob: float | None,
    orders: Iterable[LimitOrder],
    balance_by_user_id: Mapping[str, float],
    *,
    timestamp: int | None = None,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> FillResult:
    """Match a taker order of ``bet_amount`` against the book and the pool.

    Orders whose makers cannot cover their side of a match are diverted to
    ``orders_to_cancel`` and matching continues with the next order without
    consuming any of the taker's amount. The diversion is local to this
    simulation.

    Args:
        outcome: Side the taker buys.
        bet_amount: Amount the taker wants to spend (may be zero).
        state: Pool state before the bet.
        limit_prob: Taker limit probability, or ``None`` for a market order.
        orders: Resting limit orders; filled, cancelled and same-side
            orders are ignored.
        balance_by_user_id: Current balance of every maker.
        timestamp: Timestamp recorded on fills; defaults to now.
        schedule: Fee rates for pool purchases.

    Returns:
        A ``FillResult`` with the fills, fees, final state and cancellations.

    Raises:
        ValueError: If ``bet_amount`` or ``limit_prob`` is NaN.

    """
    if math.isnan(bet_amount):
        msg = f"Invalid bet amount: {bet_amount}"
        raise ValueError(msg)
    if limit_prob is not None and math.isnan(limit_prob):
        msg = f"Invalid limit_prob: {limit_prob}"
        raise ValueError(msg)

    ts = _now_ms() if timestamp is None else timestamp
    sorted_orders = sort_opposing_orders(orders, outcome)
    balances = dict(balance_by_user_id)

    taker_fills: list[Fill] = []
    maker_fills: list[OrderMatch] = []
    orders_to_cancel: list[LimitOrder] = []
    remaining = bet_amount
    current = state
    total_fees = NO_FEES

    index = 0
    # Each order is visited once, preceded by at most one pool fill
    for _ in range(2 * len(sorted_orders) + 2):
        if floating_equal(remaining, 0):
            break
        matched = sorted_orders[index] if index < len(sorted_orders) else None
        match = compute_fill(
            remaining, outcome, limit_prob, current, matched, timestamp=ts, schedule=schedule
        )
        if match is None:
            break

        if isinstance(match, PoolMatch):
            current = match.state
            total_fees = total_fees + match.fees
        else:
            index += 1
            user_id = match.order.user_id
            maker_balance = balances.get(user_id, 0.0)
            if not floating_greater_equal(maker_balance, match.maker.amount):
                logger.warning(
                    "Order %s skipped: maker %s balance %.2f below %.2f",
                    match.order.id,
                    user_id,
                    maker_balance,
                    match.maker.amount,
                )
                orders_to_cancel.append(match.order)
                continue
            balances[user_id] = maker_balance - match.maker.amount
            maker_fills.append(match)

        taker_fills.append(match.taker)
        remaining -= match.taker.amount

    return FillResult(
        taker_fills=tuple(taker_fills),
        maker_fills=tuple(maker_fills),
        total_fees=total_fees,
        final_state=current,
        orders_to_cancel=tuple(orders_to_cancel),
    )


def get_binary_cpmm_bet_info(  # noqa: PLR0913
    outcome: Outcome,
    bet_amount: float,
    state: CpmmState,
    limit_prob: float | None,
    orders: Iterable[LimitOrder],
    balance_by_user_id: Mapping[str, float],
    *,
    total_liquidity: float = 0.0,
    timestamp: int | None = None,
    schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> BetInfo:
    """Simulate a bet and summarise it as a candidate order.

    Args:
        outcome: Side the taker buys.
        bet_amount: Amount the taker wants to spend.
        state: Pool state before the bet.
        limit_prob: Taker limit probability, or ``None`` for a market order.
        orders: Resting limit orders.
        balance_by_user_id: Current balance of every maker.
        total_liquidity: Total liquidity of the market before the bet.
        timestamp: Timestamp recorded on fills; defaults to now.
        schedule: Fee rates for pool purchases.

    Returns:
        A ``BetInfo`` describing the fills and the resulting market state.

    """
    result = compute_fills(
        outcome,
        bet_amount,
        state,
        limit_prob,
        orders,
        balance_by_user_id,
        timestamp=timestamp,
        schedule=schedule,
    )
    amount = result.amount
    return BetInfo(
        outcome=outcome,
        order_amount=bet_amount,
        amount=amount,
        shares=result.shares,
        limit_prob=limit_prob,
        is_filled=floating_equal(bet_amount, amount),
        fills=result.taker_fills,
        prob_before=probability(state.pool, state.p),
        prob_after=probability(result.final_state.pool, result.final_state.p),
        fees=result.total_fees,
        state=result.final_state,
        new_total_liquidity=total_liquidity + result.total_fees.liquidity_fee,
        maker_fills=result.maker_fills,
        orders_to_cancel=result.orders_to_cancel,
    )
