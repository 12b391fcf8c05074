"""Structural protocols for pluggable data sources and evaluators.

Define the ``MarketDataSource`` and ``UserDataSource`` interfaces that
decouple the kernel from wherever snapshots come from (a file, an API
client, a test fake), plus the evaluator callables consumed by the root
finder. Any object whose shape matches can be used without explicit
inheritance.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from manifolio.market.model import MarketModel
    from manifolio.portfolio.user_model import UserModel

Evaluator = Callable[[float], float]
AsyncEvaluator = Callable[[float], Awaitable[float]]


@runtime_checkable
class MarketDataSource(Protocol):
    """Async provider of fully materialised market snapshots.

    Implementors return the pool, the open limit orders and the balance of
    every user with an open order, already assembled into a
    ``MarketModel``.
    """

    async def get_market_model(self, slug: str) -> "MarketModel":
        """Return a snapshot of the market identified by ``slug``."""
        ...


@runtime_checkable
class UserDataSource(Protocol):
    """Async provider of user portfolio snapshots.

    Implementors return the balance, outstanding loans and filled
    positions of a user as a ``UserModel``.
    """

    async def get_user_model(self, username: str) -> "UserModel":
        """Return a snapshot of the user identified by ``username``."""
        ...
