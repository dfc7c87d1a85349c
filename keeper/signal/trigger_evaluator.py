"""Trigger evaluation: decides whether an order is ready to execute.

Evaluation is advisory. The vault program re-verifies every trigger on
chain, so a candidate emitted here may still be rejected at execution.
"""

import asyncio
import logging
from collections.abc import Callable

from solders.pubkey import Pubkey

from keeper.chain.codec import decode_u64_at
from keeper.chain.vault_client import VaultClient
from keeper.ingest.feed_cache import OracleFeedCache
from keeper.ingest.feed_ids import bytes_to_hex
from keeper.ingest.staleness import is_snapshot_fresh, snapshot_age_ns
from keeper.models.common import NANOS_PER_SECOND, now_ns
from keeper.models.execution import ExecutionCandidate, Route
from keeper.models.order import (
    OrderEnvelope,
    PdaValueEquals,
    PriceBelowStork,
    StorkOutcomeEquals,
    TimeAfter,
    Trigger,
)
from keeper.storage.ledger import ExecutionLedger

logger = logging.getLogger(__name__)


def implied_route(trigger: Trigger) -> Route:
    match trigger:
        case TimeAfter() | PdaValueEquals():
            return Route.BASE
        case PriceBelowStork():
            return Route.STORK_PRICE
        case StorkOutcomeEquals():
            return Route.STORK_OUTCOME
    raise TypeError(f"Unsupported trigger: {trigger!r}")


class ChainContext:
    """Per-cycle view of chain state.

    The slot is read once and reused so every order in a cycle is judged
    against the same slot. Call ``reset()`` at the start of each cycle.
    """

    def __init__(self, vault: VaultClient, pda_value_offset: int = 8):
        self.vault = vault
        self.pda_value_offset = pda_value_offset
        self._slot: int | None = None
        self._slot_lock = asyncio.Lock()

    def reset(self) -> None:
        self._slot = None

    async def current_slot(self) -> int:
        if self._slot is not None:
            return self._slot
        async with self._slot_lock:
            if self._slot is None:
                self._slot = await self.vault.get_slot()
        return self._slot

    async def read_pda_value(self, account: Pubkey) -> int | None:
        data = await self.vault.fetch_account_data(account)
        if data is None:
            return None
        return decode_u64_at(data, self.pda_value_offset)


class TriggerEvaluator:
    def __init__(
        self,
        chain: ChainContext,
        feed_cache: OracleFeedCache,
        ledger: ExecutionLedger,
        max_future_skew_sec: int = 300,
        clock_ns: Callable[[], int] = now_ns,
    ):
        self.chain = chain
        self.feed_cache = feed_cache
        self.ledger = ledger
        self.max_future_skew_sec = max_future_skew_sec
        self.clock_ns = clock_ns
        self._pending_feeds: dict[str, bytes] = {}

    def pending_feed_ids(self) -> list[bytes]:
        return list(self._pending_feeds.values())

    def drain_pending_feed_ids(self) -> list[bytes]:
        feeds = self.pending_feed_ids()
        self._pending_feeds.clear()
        return feeds

    async def evaluate(self, order: OrderEnvelope) -> ExecutionCandidate | None:
        """Return an ExecutionCandidate if the order's trigger is satisfied."""
        route = implied_route(order.trigger)

        if self.ledger.is_duplicate(order.order_pubkey, route):
            logger.debug("Order %s/%s already executed per ledger", order.order_pubkey, route)
            return None

        if order.executed or order.canceled:
            return None

        if order.expires_slot is not None:
            slot = await self.chain.current_slot()
            if slot > order.expires_slot:
                self._mark_expired(order, slot)
                return None

        match order.trigger:
            case TimeAfter(slot=target):
                slot = await self.chain.current_slot()
                if slot < target:
                    return None
                reason = f"slot {slot} >= {target}"
            case PdaValueEquals(account=account, expected_value=expected):
                value = await self.chain.read_pda_value(account)
                if value is None or value != expected:
                    return None
                reason = f"{account} value == {expected}"
            case PriceBelowStork(feed_id=feed_id, max_price_q=max_q, max_age_sec=max_age):
                snapshot = self._fresh_snapshot(feed_id, max_age)
                if snapshot is None or snapshot.quantized_value > max_q:
                    return None
                reason = f"price {snapshot.quantized_value} <= {max_q}"
            case StorkOutcomeEquals(
                feed_id=feed_id, expected_outcome_q=expected_q, max_age_sec=max_age
            ):
                snapshot = self._fresh_snapshot(feed_id, max_age)
                if snapshot is None or snapshot.quantized_value != expected_q:
                    return None
                reason = f"outcome == {expected_q}"
            case _:
                raise TypeError(f"Unsupported trigger: {order.trigger!r}")

        feed = getattr(order.trigger, "feed_id", None) if route.needs_oracle else None
        logger.info("Order %s ready via %s: %s", order.order_pubkey, route, reason)
        return ExecutionCandidate(
            order_pubkey=order.order_pubkey, route=route, reason=reason, feed_id=feed
        )

    def _fresh_snapshot(self, feed_id: bytes, max_age_sec: int):
        """Cached snapshot within max age, or None (queued for refresh)."""
        snapshot = self.feed_cache.get(feed_id)
        if snapshot is None:
            self._pending_feeds[bytes_to_hex(feed_id)] = feed_id
            return None

        now = self.clock_ns()
        if not is_snapshot_fresh(snapshot, max_age_sec, now, self.max_future_skew_sec):
            logger.debug(
                "Feed %s stale: age %ds > %ds",
                bytes_to_hex(feed_id)[:16],
                snapshot_age_ns(snapshot, now) // NANOS_PER_SECOND,
                max_age_sec,
            )
            self._pending_feeds[bytes_to_hex(feed_id)] = feed_id
            return None
        return snapshot

    def _mark_expired(self, order: OrderEnvelope, slot: int) -> None:
        key = f"expired:{order.order_pubkey}"
        if self.ledger.get_checkpoint(key) is None:
            self.ledger.set_checkpoint(key, str(slot))
            logger.info(
                "Order %s expired at slot %d (current %d)",
                order.order_pubkey, order.expires_slot, slot,
            )
