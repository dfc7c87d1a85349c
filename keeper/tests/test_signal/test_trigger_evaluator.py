"""Tests for trigger evaluation across all trigger variants."""

import asyncio
import struct

import pytest
from solders.pubkey import Pubkey

from keeper.ingest.feed_cache import OracleFeedCache
from keeper.models.execution import ExecutionResult, ExecutionStatus, Route
from keeper.models.order import PdaValueEquals, PriceBelowStork, StorkOutcomeEquals, TimeAfter
from keeper.signal.trigger_evaluator import ChainContext, TriggerEvaluator, implied_route
from keeper.storage.ledger import ExecutionLedger
from keeper.tests.factories import (
    FEED_F,
    NOW_NS,
    FakeStork,
    FakeVault,
    make_candidate,
    make_order,
    make_snapshot,
)


async def _evaluator(
    ledger: ExecutionLedger, vault: FakeVault | None = None, snapshots=None
) -> TriggerEvaluator:
    cache = OracleFeedCache(FakeStork(snapshots or []))
    if snapshots:
        await cache.refresh([s.feed_id for s in snapshots])
    return TriggerEvaluator(
        ChainContext(vault or FakeVault(), pda_value_offset=8),
        cache,
        ledger,
        clock_ns=lambda: NOW_NS,
    )


class TestImpliedRoute:
    def test_routes(self):
        assert implied_route(TimeAfter(1)) == Route.BASE
        assert implied_route(PdaValueEquals(Pubkey.new_unique(), 1)) == Route.BASE
        assert implied_route(PriceBelowStork(FEED_F, 1, 1)) == Route.STORK_PRICE
        assert implied_route(StorkOutcomeEquals(FEED_F, 1, 1)) == Route.STORK_OUTCOME


class TestTimeAfter:
    @pytest.mark.asyncio
    async def test_before_target_slot(self, ledger):
        ev = await _evaluator(ledger, FakeVault(slot=99))
        assert await ev.evaluate(make_order(TimeAfter(slot=100))) is None

    @pytest.mark.asyncio
    async def test_at_target_slot(self, ledger):
        ev = await _evaluator(ledger, FakeVault(slot=100))
        order = make_order(TimeAfter(slot=100))
        cand = await ev.evaluate(order)
        assert cand is not None
        assert cand.route == Route.BASE
        assert cand.order_pubkey == order.order_pubkey
        assert cand.feed_id is None

    @pytest.mark.asyncio
    async def test_slot_read_once_per_cycle(self, ledger):
        vault = FakeVault(slot=200)
        ev = await _evaluator(ledger, vault)
        for _ in range(3):
            await ev.evaluate(make_order(TimeAfter(slot=100)))
        assert vault.slot_reads == 1
        ev.chain.reset()
        await ev.evaluate(make_order(TimeAfter(slot=100)))
        assert vault.slot_reads == 2

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_share_one_slot_read(self, ledger):
        vault = FakeVault(slot=200, slot_delay=0.01)
        ev = await _evaluator(ledger, vault)
        orders = [make_order(TimeAfter(slot=100), order_id=i) for i in range(5)]

        results = await asyncio.gather(*(ev.evaluate(o) for o in orders))

        assert all(r is not None for r in results)
        assert vault.slot_reads == 1


class TestPdaValueEquals:
    @pytest.mark.asyncio
    async def test_match(self, ledger):
        vault = FakeVault()
        watched = Pubkey.new_unique()
        vault.accounts[watched] = b"\x00" * 8 + struct.pack("<Q", 42)
        ev = await _evaluator(ledger, vault)
        assert await ev.evaluate(make_order(PdaValueEquals(watched, 42))) is not None

    @pytest.mark.asyncio
    async def test_mismatch(self, ledger):
        vault = FakeVault()
        watched = Pubkey.new_unique()
        vault.accounts[watched] = b"\x00" * 8 + struct.pack("<Q", 41)
        ev = await _evaluator(ledger, vault)
        assert await ev.evaluate(make_order(PdaValueEquals(watched, 42))) is None

    @pytest.mark.asyncio
    async def test_missing_account(self, ledger):
        ev = await _evaluator(ledger)
        assert await ev.evaluate(make_order(PdaValueEquals(Pubkey.new_unique(), 0))) is None


class TestPriceBelowStork:
    @pytest.mark.asyncio
    async def test_fresh_price_below_threshold(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=480, age_sec=30)])
        cand = await ev.evaluate(make_order(PriceBelowStork(FEED_F, 500, 60)))
        assert cand is not None
        assert cand.route == Route.STORK_PRICE
        assert cand.feed_id == FEED_F

    @pytest.mark.asyncio
    async def test_price_equal_threshold_triggers(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=500)])
        assert await ev.evaluate(make_order(PriceBelowStork(FEED_F, 500, 60))) is not None

    @pytest.mark.asyncio
    async def test_price_above_threshold(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=501)])
        assert await ev.evaluate(make_order(PriceBelowStork(FEED_F, 500, 60))) is None

    @pytest.mark.asyncio
    async def test_stale_snapshot_queues_refresh(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=480, age_sec=90)])
        assert await ev.evaluate(make_order(PriceBelowStork(FEED_F, 500, 60))) is None
        assert ev.pending_feed_ids() == [FEED_F]

    @pytest.mark.asyncio
    async def test_cache_miss_queues_refresh(self, ledger):
        ev = await _evaluator(ledger)
        assert await ev.evaluate(make_order(PriceBelowStork(FEED_F, 500, 60))) is None
        assert ev.drain_pending_feed_ids() == [FEED_F]
        assert ev.pending_feed_ids() == []


class TestStorkOutcomeEquals:
    @pytest.mark.asyncio
    async def test_outcome_match(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=1)])
        cand = await ev.evaluate(make_order(StorkOutcomeEquals(FEED_F, 1, 60)))
        assert cand.route == Route.STORK_OUTCOME

    @pytest.mark.asyncio
    async def test_outcome_mismatch(self, ledger):
        ev = await _evaluator(ledger, snapshots=[make_snapshot(FEED_F, value=0)])
        assert await ev.evaluate(make_order(StorkOutcomeEquals(FEED_F, 1, 60))) is None


class TestGuards:
    @pytest.mark.asyncio
    async def test_ledger_confirmed_skips(self, ledger):
        order = make_order(TimeAfter(slot=100))
        ledger.record_result(
            make_candidate(order_pubkey=order.order_pubkey),
            ExecutionResult("sig", 1, ExecutionStatus.CONFIRMED),
            1,
        )
        ev = await _evaluator(ledger, FakeVault(slot=500))
        assert await ev.evaluate(order) is None

    @pytest.mark.asyncio
    async def test_canceled_skips(self, ledger):
        ev = await _evaluator(ledger, FakeVault(slot=500))
        assert await ev.evaluate(make_order(TimeAfter(slot=100), canceled=True)) is None

    @pytest.mark.asyncio
    async def test_expired_skips_and_checkpoints(self, ledger):
        ev = await _evaluator(ledger, FakeVault(slot=500))
        order = make_order(TimeAfter(slot=100), expires_slot=400)
        assert await ev.evaluate(order) is None
        assert ledger.get_checkpoint(f"expired:{order.order_pubkey}") == "500"

    @pytest.mark.asyncio
    async def test_expiry_slot_inclusive(self, ledger):
        ev = await _evaluator(ledger, FakeVault(slot=400))
        order = make_order(TimeAfter(slot=100), expires_slot=400)
        assert await ev.evaluate(order) is not None
