"""Keeper cycle: one scan -> evaluate -> compose -> submit -> record pass."""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime

from solders.pubkey import Pubkey

from keeper.errors import MissingOracleAttestation, OracleClientError
from keeper.execution.backoff import RetryPolicy
from keeper.execution.composer import TransactionComposer
from keeper.execution.submitter import TransactionSubmitter
from keeper.ingest.feed_cache import OracleFeedCache
from keeper.ingest.order_source import OrderSource
from keeper.models.common import utc_now
from keeper.models.execution import ExecutionCandidate
from keeper.models.order import OrderEnvelope
from keeper.models.reporting import CycleSummary
from keeper.reporting.cycle_summarizer import CycleSummarizer
from keeper.reporting.formatters import format_summary_text
from keeper.signal.trigger_evaluator import TriggerEvaluator, implied_route
from keeper.storage import cycle_repo
from keeper.storage.ledger import ExecutionLedger, ledger_key

logger = logging.getLogger(__name__)


class KeeperCycle:
    """Runs keeper cycles with bounded per-order parallelism.

    Per order the sequence is strict: evaluate, compose, submit, record.
    Distinct orders run concurrently up to ``max_concurrency``. The oracle
    cache is refreshed once per cycle, before any order is evaluated.
    """

    def __init__(
        self,
        order_source: OrderSource,
        evaluator: TriggerEvaluator,
        composer: TransactionComposer,
        submitter: TransactionSubmitter,
        ledger: ExecutionLedger,
        feed_cache: OracleFeedCache,
        keeper_pubkey: Pubkey,
        retry_policy: RetryPolicy | None = None,
        max_concurrency: int = 4,
        mode: str = "dry-run",
        config_hash: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.order_source = order_source
        self.evaluator = evaluator
        self.composer = composer
        self.submitter = submitter
        self.ledger = ledger
        self.feed_cache = feed_cache
        self.keeper_pubkey = keeper_pubkey
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_concurrency = max(1, max_concurrency)
        self.mode = mode
        self.config_hash = config_hash
        self.clock = clock

    async def run(self) -> CycleSummary:
        """Execute one full keeper cycle. Never raises for per-order failures."""
        start_time = time.monotonic()
        cycle_id = str(uuid.uuid4())
        summarizer = CycleSummarizer(cycle_id, self.mode)
        cycle_repo.create_cycle(self.ledger.conn, cycle_id, self.mode, self.config_hash)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        try:
            # 1. SCAN
            self.evaluator.chain.reset()
            orders = await self.order_source.scan()
            summarizer.record_scan(len(orders), self.order_source.last_decode_failures)

            # 2. LEDGER GATE (dedup + backoff before any transaction work)
            eligible = [o for o in orders if self._is_eligible(o, summarizer)]

            # 3. ORACLE REFRESH (one batched call)
            await self._refresh_feeds(eligible, summarizer)

            # 4. EVALUATE
            evaluated = await asyncio.gather(
                *(self._evaluate(order, semaphore, summarizer) for order in eligible)
            )
            ready = [
                (order, candidate)
                for order, candidate in zip(eligible, evaluated)
                if candidate is not None
            ]
            summarizer.record_candidates(len(ready))

            # 5. COMPOSE + SUBMIT + RECORD
            await asyncio.gather(
                *(
                    self._execute(order, candidate, semaphore, summarizer)
                    for order, candidate in ready
                )
            )
            status = "completed"
            error_message = None
        except Exception as e:
            logger.exception("Keeper cycle %s failed", cycle_id[:8])
            summarizer.record_error(str(e))
            status = "failed"
            error_message = str(e)

        summarizer.record_duration(time.monotonic() - start_time)
        summary = summarizer.finalize()
        cycle_repo.complete_cycle(self.ledger.conn, summary, status, error_message)
        logger.info("\n%s", format_summary_text(summary))
        return summary

    def _is_eligible(self, order: OrderEnvelope, summarizer: CycleSummarizer) -> bool:
        route = implied_route(order.trigger)
        entry = self.ledger.get_entry(order.order_pubkey, route)
        if entry is None:
            return True
        if self.ledger.is_duplicate(order.order_pubkey, route):
            summarizer.record_duplicate()
            return False
        if self.retry_policy.exhausted(entry.attempts):
            self._note_gave_up(order, route, entry.attempts)
            summarizer.record_deferred()
            return False
        if not self.retry_policy.should_attempt(entry, self.clock()):
            logger.debug(
                "Backing off %s (%d attempts)",
                ledger_key(order.order_pubkey, route), entry.attempts,
            )
            summarizer.record_deferred()
            return False
        return True

    def _note_gave_up(self, order: OrderEnvelope, route, attempts: int) -> None:
        key = f"gave_up:{ledger_key(order.order_pubkey, route)}"
        if self.ledger.get_checkpoint(key) is None:
            self.ledger.set_checkpoint(key, str(attempts))
            logger.warning(
                "Giving up on %s after %d attempts",
                ledger_key(order.order_pubkey, route), attempts,
            )

    async def _refresh_feeds(
        self, orders: list[OrderEnvelope], summarizer: CycleSummarizer
    ) -> None:
        requested: list[bytes] = self.evaluator.drain_pending_feed_ids()
        for order in orders:
            feed_id = getattr(order.trigger, "feed_id", None)
            if feed_id is not None:
                requested.append(feed_id)

        ids = self.feed_cache.effective_feed_ids(requested)
        if not ids:
            return
        summarizer.record_feed_refresh(len(ids))
        try:
            await self.feed_cache.refresh(requested)
        except OracleClientError as e:
            # Cached snapshots stay usable; freshness is checked per trigger.
            logger.warning("Oracle refresh failed, using cached feeds: %s", e)

    async def _evaluate(
        self,
        order: OrderEnvelope,
        semaphore: asyncio.Semaphore,
        summarizer: CycleSummarizer,
    ) -> ExecutionCandidate | None:
        async with semaphore:
            try:
                return await self.evaluator.evaluate(order)
            except Exception as e:
                logger.warning("Evaluation failed for %s: %s", order.order_pubkey, e)
                summarizer.record_evaluation_error()
                return None

    async def _execute(
        self,
        order: OrderEnvelope,
        candidate: ExecutionCandidate,
        semaphore: asyncio.Semaphore,
        summarizer: CycleSummarizer,
    ) -> None:
        async with semaphore:
            attempts = self.ledger.get_attempt_count(candidate.order_pubkey, candidate.route) + 1
            try:
                plan = self.composer.build(candidate, order, self.keeper_pubkey)
            except MissingOracleAttestation as e:
                logger.error("Refusing to build %s: %s", candidate.order_pubkey, e)
                self.ledger.record_failure(candidate, e.error_code, attempts)
                summarizer.record_failure(e.error_code)
                return
            except Exception:
                logger.exception("Composition failed for %s", candidate.order_pubkey)
                self.ledger.record_failure(candidate, "compose_error", attempts)
                summarizer.record_failure("compose_error")
                return

            result = await self.submitter.submit(plan)
            self.ledger.record_result(candidate, result, attempts)
            summarizer.record_result(result)
            if not result.succeeded:
                logger.warning(
                    "Execution of %s failed: %s",
                    ledger_key(candidate.order_pubkey, candidate.route), result.error_code,
                )
