"""Short-lived cache of market snapshots keyed by slug.

Assembling a ``MarketModel`` needs several round trips (market, order
book, maker balances), and a single recommendation may ask for the same
market more than once. ``MarketModelCache`` wraps a ``MarketDataSource``,
keeps each snapshot for a configurable TTL and shares one in-flight
fetch between concurrent callers asking for the same slug. It is an
explicit collaborator: the kernel itself never caches anything.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from manifolio.core.protocols import MarketDataSource
from manifolio.market.model import MarketModel

logger = logging.getLogger(__name__)

_DEFAULT_TTL_SECONDS = 30.0


class MarketModelCache:
    """TTL cache with in-flight deduplication in front of a market data source.

    Args:
        source: Provider of fresh market snapshots.
        ttl_seconds: How long a fetched snapshot stays valid.
        clock: Monotonic time source, injectable for tests.

    """

    def __init__(
        self,
        source: MarketDataSource,
        ttl_seconds: float = _DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an empty cache in front of ``source``."""
        self._source = source
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, asyncio.Task[MarketModel]]] = {}

    async def get(self, slug: str) -> MarketModel:
        """Return the snapshot for ``slug``, fetching it if missing or stale.

        Concurrent calls for the same slug await the same fetch. A failed
        fetch is evicted so the next call retries.

        Args:
            slug: Market identifier.

        Returns:
            The cached or freshly fetched ``MarketModel``.

        """
        now = self._clock()
        entry = self._entries.get(slug)
        if entry is None or now - entry[0] >= self._ttl:
            logger.info("Fetching market snapshot %s", slug)
            task = asyncio.create_task(self._source.get_market_model(slug))
            entry = (now, task)
            self._entries[slug] = entry
        else:
            logger.debug("Market snapshot %s served from cache", slug)

        task = entry[1]
        try:
            return await asyncio.shield(task)
        except Exception:
            if self._entries.get(slug) is entry:
                del self._entries[slug]
            raise

    def invalidate(self, slug: str | None = None) -> None:
        """Drop the entry for ``slug``, or every entry when ``slug`` is ``None``."""
        if slug is None:
            self._entries.clear()
        else:
            self._entries.pop(slug, None)
