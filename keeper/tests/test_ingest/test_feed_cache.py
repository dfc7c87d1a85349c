"""Tests for the oracle feed cache."""

import pytest

from keeper.errors import OracleClientError
from keeper.ingest.feed_cache import OracleFeedCache
from keeper.tests.factories import FEED_F, FEED_G, FakeStork, make_snapshot


class TestEffectiveFeedIds:
    def test_allowlist_takes_precedence(self):
        cache = OracleFeedCache(FakeStork(), allowlist=["0x" + FEED_G.hex().upper()])
        assert cache.effective_feed_ids([FEED_F]) == [FEED_G.hex()]

    def test_requested_deduplicated(self):
        cache = OracleFeedCache(FakeStork())
        ids = cache.effective_feed_ids([FEED_F, FEED_F.hex(), FEED_G])
        assert ids == [FEED_F.hex(), FEED_G.hex()]


class TestRefresh:
    @pytest.mark.asyncio
    async def test_empty_is_noop(self):
        stork = FakeStork()
        cache = OracleFeedCache(stork)
        assert await cache.refresh([]) == 0
        assert stork.calls == []

    @pytest.mark.asyncio
    async def test_stores_by_hex_key(self):
        stork = FakeStork([make_snapshot(FEED_F, value=480)])
        cache = OracleFeedCache(stork)
        assert await cache.refresh([FEED_F]) == 1
        assert cache.get(FEED_F).quantized_value == 480
        assert cache.get("0x" + FEED_F.hex()).quantized_value == 480
        assert cache.snapshot_ids() == [FEED_F.hex()]

    @pytest.mark.asyncio
    async def test_newer_snapshot_overwrites(self):
        stork = FakeStork([make_snapshot(FEED_F, value=480, age_sec=90)])
        cache = OracleFeedCache(stork)
        await cache.refresh([FEED_F])
        stork.snapshots = [make_snapshot(FEED_F, value=470, age_sec=5)]
        await cache.refresh([FEED_F])
        assert cache.get(FEED_F).quantized_value == 470

    @pytest.mark.asyncio
    async def test_miss_returns_none(self):
        cache = OracleFeedCache(FakeStork())
        await cache.refresh([FEED_F])
        assert cache.get(FEED_F) is None

    @pytest.mark.asyncio
    async def test_allowlist_fetched_instead_of_requested(self):
        stork = FakeStork([make_snapshot(FEED_F, value=480), make_snapshot(FEED_G, value=12)])
        cache = OracleFeedCache(stork, allowlist=[FEED_G.hex()])
        assert await cache.refresh([FEED_F]) == 1
        assert stork.calls == [[FEED_G.hex()]]
        assert cache.get(FEED_G).quantized_value == 12
        assert cache.get(FEED_F) is None

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        cache = OracleFeedCache(FakeStork(error=OracleClientError("boom")))
        with pytest.raises(OracleClientError):
            await cache.refresh([FEED_F])
