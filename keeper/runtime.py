"""Startup wiring: builds every keeper component once from config."""

import logging
from dataclasses import dataclass

import httpx

from keeper.chain.connection import SolanaContext, create_solana_context
from keeper.chain.vault_client import VaultClient
from keeper.config.loader import config_hash
from keeper.config.schema import KeeperConfig
from keeper.execution.backoff import RetryPolicy
from keeper.execution.composer import TransactionComposer
from keeper.execution.submitter import TransactionSubmitter
from keeper.ingest.feed_cache import OracleFeedCache
from keeper.ingest.order_source import OrderSource
from keeper.ingest.stork_client import StorkClient
from keeper.pipeline.keeper_cycle import KeeperCycle
from keeper.signal.trigger_evaluator import ChainContext, TriggerEvaluator
from keeper.storage.ledger import ExecutionLedger

logger = logging.getLogger(__name__)


@dataclass
class KeeperRuntime:
    solana: SolanaContext
    ledger: ExecutionLedger
    http: httpx.AsyncClient
    cycle: KeeperCycle

    async def close(self) -> None:
        await self.http.aclose()
        await self.solana.close()
        self.ledger.close()


def create_runtime(config: KeeperConfig) -> KeeperRuntime:
    """Construct the keeper. Raises ConfigError/KeypairLoadError on bad setup."""
    solana = create_solana_context(config)
    ledger = ExecutionLedger.open(config.ledger.sqlite_path)

    http = httpx.AsyncClient(timeout=config.oracle.timeout_s)
    stork = StorkClient(
        config.oracle.http_url,
        api_key=config.oracle.api_key,
        timeout=config.oracle.timeout_s,
        http_client=http,
    )
    feed_cache = OracleFeedCache(stork, config.oracle.feed_allowlist)

    vault = VaultClient(solana.client, solana.vault_program_id, solana.commitment)
    chain = ChainContext(vault, pda_value_offset=config.program.pda_value_offset)
    evaluator = TriggerEvaluator(
        chain,
        feed_cache,
        ledger,
        max_future_skew_sec=config.oracle.max_future_skew_sec,
    )
    composer = TransactionComposer(
        vault,
        feed_cache,
        compute_unit_limit=config.execution.compute_unit_limit,
        compute_unit_price=config.execution.compute_unit_price_micro_lamports,
    )
    submitter = TransactionSubmitter(
        solana.client,
        solana.keeper_keypair,
        dry_run=config.execution.dry_run,
        commitment=solana.commitment,
        confirm_max_polls=config.execution.confirm_max_polls,
        confirm_poll_interval_s=config.execution.confirm_poll_interval_s,
    )
    cycle = KeeperCycle(
        order_source=OrderSource(vault),
        evaluator=evaluator,
        composer=composer,
        submitter=submitter,
        ledger=ledger,
        feed_cache=feed_cache,
        keeper_pubkey=solana.keeper_keypair.pubkey(),
        retry_policy=RetryPolicy.from_config(config.retry),
        max_concurrency=config.ops.max_concurrency,
        mode=config.mode,
        config_hash=config_hash(config),
    )
    return KeeperRuntime(solana=solana, ledger=ledger, http=http, cycle=cycle)
