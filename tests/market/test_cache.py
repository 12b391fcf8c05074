"""Tests for the TTL market snapshot cache."""

import asyncio

import pytest

from manifolio.core.exceptions import SnapshotError
from manifolio.core.models import CpmmState
from manifolio.market.cache import MarketModelCache
from manifolio.market.model import MarketModel


class _FakeSource:
    """Market data source that counts fetches."""

    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[str] = []
        self.fail = fail

    async def get_market_model(self, slug: str) -> MarketModel:
        self.calls.append(slug)
        await asyncio.sleep(0)
        if self.fail:
            msg = f"no market {slug}"
            raise SnapshotError(msg)
        return MarketModel(CpmmState.from_probability(0.5, 100), slug=slug)


class _Clock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestMarketModelCache:
    """Tests for MarketModelCache."""

    @pytest.mark.asyncio
    async def test_hit_within_ttl(self) -> None:
        """Test a second call within the TTL reuses the snapshot."""
        source = _FakeSource()
        clock = _Clock()
        cache = MarketModelCache(source, ttl_seconds=30, clock=clock)
        first = await cache.get("m")
        clock.now = 29.0
        second = await cache.get("m")
        assert first is second
        assert source.calls == ["m"]

    @pytest.mark.asyncio
    async def test_refetch_after_ttl(self) -> None:
        """Test an expired entry is fetched again."""
        source = _FakeSource()
        clock = _Clock()
        cache = MarketModelCache(source, ttl_seconds=30, clock=clock)
        await cache.get("m")
        clock.now = 30.0
        await cache.get("m")
        assert source.calls == ["m", "m"]

    @pytest.mark.asyncio
    async def test_concurrent_fetches_are_deduplicated(self) -> None:
        """Test concurrent callers for one slug share a single fetch."""
        source = _FakeSource()
        cache = MarketModelCache(source)
        results = await asyncio.gather(cache.get("m"), cache.get("m"), cache.get("other"))
        assert results[0] is results[1]
        assert sorted(source.calls) == ["m", "other"]

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self) -> None:
        """Test an error propagates and the next call retries."""
        source = _FakeSource(fail=True)
        cache = MarketModelCache(source)
        with pytest.raises(SnapshotError):
            await cache.get("m")
        source.fail = False
        model = await cache.get("m")
        assert model.slug == "m"
        assert source.calls == ["m", "m"]

    @pytest.mark.asyncio
    async def test_invalidate(self) -> None:
        """Test invalidation forces a refetch."""
        source = _FakeSource()
        cache = MarketModelCache(source)
        await cache.get("m")
        cache.invalidate("m")
        await cache.get("m")
        cache.invalidate()
        await cache.get("m")
        assert source.calls == ["m", "m", "m"]
