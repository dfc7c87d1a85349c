"""Transaction submission: sign, send or simulate, and classify the outcome."""

import asyncio
import logging

import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.models import TxOpts
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from keeper.errors import KeeperError
from keeper.models.execution import (
    DRY_RUN_SIGNATURE,
    ExecutionResult,
    ExecutionStatus,
    TransactionPlan,
)

logger = logging.getLogger(__name__)

CONFIRMATION_TIMEOUT = "confirmation_timeout"
RPC_TIMEOUT = "rpc_timeout"
RPC_ERROR = "rpc_error"

_STATUS_RANK = [
    ("processed", TransactionConfirmationStatus.Processed),
    ("confirmed", TransactionConfirmationStatus.Confirmed),
    ("finalized", TransactionConfirmationStatus.Finalized),
]

# substring (lowercased) -> error code
_ERROR_PATTERNS = [
    ("blockhashnotfound", "blockhash_not_found"),
    ("blockhash not found", "blockhash_not_found"),
    ("insufficient", "insufficient_funds"),
    ("alreadyexecuted", "already_executed"),
    ("already executed", "already_executed"),
    ("ordernotactive", "already_executed"),
    ("triggernotready", "trigger_not_ready"),
    ("trigger not", "trigger_not_ready"),
    ("orderexpired", "order_expired"),
]


def classify_error(error: object) -> str:
    """Map a provider error to a stable error code."""
    text = str(error).lower()
    for pattern, code in _ERROR_PATTERNS:
        if pattern in text:
            return code
    if "custom program error" in text:
        return "program_error:" + text.rsplit(":", 1)[-1].strip()
    return RPC_ERROR


def _rank(status: object) -> int:
    for i, (_name, member) in enumerate(_STATUS_RANK):
        if status == member:
            return i
    return -1


def _commitment_rank(commitment: Commitment) -> int:
    for i, (name, _member) in enumerate(_STATUS_RANK):
        if name == str(commitment):
            return i
    return 1


class TransactionSubmitter:
    """Signs and submits transaction plans.

    In dry-run mode nothing is ever broadcast: the transaction is simulated
    when an RPC client is available and the result is always ``simulated``.
    """

    def __init__(
        self,
        client: AsyncClient | None,
        keypair: Keypair,
        dry_run: bool = True,
        commitment: Commitment = Confirmed,
        confirm_max_polls: int = 30,
        confirm_poll_interval_s: float = 1.0,
    ):
        if not dry_run and client is None:
            raise KeeperError("Live submission requires an RPC client")
        self.client = client
        self.keypair = keypair
        self.dry_run = dry_run
        self.commitment = commitment
        self.confirm_max_polls = confirm_max_polls
        self.confirm_poll_interval_s = confirm_poll_interval_s

    async def submit(self, plan: TransactionPlan) -> ExecutionResult:
        if self.dry_run:
            return await self._simulate(plan)
        try:
            return await self._send_and_confirm(plan)
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            logger.warning("Submission timed out for %s: %s", plan.candidate.order_pubkey, e)
            return ExecutionResult("", 0, ExecutionStatus.FAILED, RPC_TIMEOUT)
        except Exception as e:
            code = classify_error(e)
            logger.exception(
                "Submission failed for %s/%s (%s)",
                plan.candidate.order_pubkey, plan.candidate.route, code,
            )
            return ExecutionResult("", 0, ExecutionStatus.FAILED, code)

    async def _sign(self, plan: TransactionPlan) -> VersionedTransaction:
        resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        message = MessageV0.try_compile(
            payer=plan.fee_payer,
            instructions=plan.instructions,
            address_lookup_table_accounts=[],
            recent_blockhash=resp.value.blockhash,
        )
        return VersionedTransaction(message, [self.keypair])

    async def _simulate(self, plan: TransactionPlan) -> ExecutionResult:
        candidate = plan.candidate
        slot = 0
        error_code = None
        if self.client is not None:
            try:
                tx = await self._sign(plan)
                resp = await self.client.simulate_transaction(
                    tx, commitment=self.commitment
                )
                slot = resp.context.slot
                if resp.value.err is not None:
                    error_code = classify_error(resp.value.err)
                    logger.warning(
                        "DRY-RUN simulation error for %s/%s: %s",
                        candidate.order_pubkey, candidate.route, resp.value.err,
                    )
            except Exception as e:
                logger.warning(
                    "DRY-RUN simulation unavailable for %s: %s", candidate.order_pubkey, e
                )
        logger.info(
            "DRY-RUN: execute %s via %s (%d ixs, oracle update=%s) - %s",
            candidate.order_pubkey, candidate.route, len(plan.instructions),
            plan.uses_oracle_update, candidate.reason,
        )
        return ExecutionResult(DRY_RUN_SIGNATURE, slot, ExecutionStatus.SIMULATED, error_code)

    async def _send_and_confirm(self, plan: TransactionPlan) -> ExecutionResult:
        tx = await self._sign(plan)
        resp = await self.client.send_transaction(
            tx,
            opts=TxOpts(skip_confirmation=True, preflight_commitment=self.commitment),
        )
        signature = resp.value
        logger.info(
            "LIVE: sent %s for %s/%s", signature, plan.candidate.order_pubkey, plan.candidate.route
        )
        return await self._await_confirmation(signature)

    async def _await_confirmation(self, signature: Signature) -> ExecutionResult:
        target = _commitment_rank(self.commitment)
        for _ in range(self.confirm_max_polls):
            resp = await self.client.get_signature_statuses([signature])
            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err is not None:
                    code = classify_error(status.err)
                    logger.warning("LIVE FAILED: %s -> %s", signature, status.err)
                    return ExecutionResult(str(signature), status.slot, ExecutionStatus.FAILED, code)
                if _rank(status.confirmation_status) >= target:
                    logger.info("LIVE CONFIRMED: %s at slot %d", signature, status.slot)
                    return ExecutionResult(str(signature), status.slot, ExecutionStatus.CONFIRMED)
            await asyncio.sleep(self.confirm_poll_interval_s)

        logger.warning(
            "LIVE TIMEOUT: %s not %s after %d polls",
            signature, self.commitment, self.confirm_max_polls,
        )
        return ExecutionResult(str(signature), 0, ExecutionStatus.FAILED, CONFIRMATION_TIMEOUT)
