"""Tests for TransactionSubmitter with a mocked RPC client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from keeper.errors import KeeperError
from keeper.execution.submitter import (
    CONFIRMATION_TIMEOUT,
    RPC_ERROR,
    RPC_TIMEOUT,
    TransactionSubmitter,
    classify_error,
)
from keeper.models.execution import DRY_RUN_SIGNATURE, ExecutionStatus, TransactionPlan
from keeper.tests.factories import make_candidate, make_plan


@pytest.fixture
def rpc():
    client = AsyncMock()
    client.get_latest_blockhash.return_value = SimpleNamespace(
        value=SimpleNamespace(blockhash=Hash.default())
    )
    client.simulate_transaction.return_value = SimpleNamespace(
        context=SimpleNamespace(slot=55), value=SimpleNamespace(err=None)
    )
    client.send_transaction.return_value = SimpleNamespace(value=Signature.default())
    return client


@pytest.fixture
def signed_plan(keypair: Keypair) -> TransactionPlan:
    plan = make_plan(make_candidate())
    return TransactionPlan(
        candidate=plan.candidate, fee_payer=keypair.pubkey(), instructions=plan.instructions
    )


def _status(confirmation=TransactionConfirmationStatus.Confirmed, err=None, slot=77):
    return SimpleNamespace(
        value=[SimpleNamespace(err=err, slot=slot, confirmation_status=confirmation)]
    )


class TestClassifyError:
    @pytest.mark.parametrize(
        "message, code",
        [
            ("Blockhash not found", "blockhash_not_found"),
            ("Attempt to debit an account but found no record; insufficient funds", "insufficient_funds"),
            ("Program log: AnchorError TriggerNotReady", "trigger_not_ready"),
            ("OrderExpired", "order_expired"),
            ("custom program error: 0x1771", "program_error:0x1771"),
            ("something else", RPC_ERROR),
        ],
    )
    def test_codes(self, message, code):
        assert classify_error(message) == code


class TestDryRun:
    @pytest.mark.asyncio
    async def test_never_broadcasts(self, rpc, keypair, signed_plan):
        submitter = TransactionSubmitter(rpc, keypair, dry_run=True)
        result = await submitter.submit(signed_plan)
        assert result.status == ExecutionStatus.SIMULATED
        assert result.signature == DRY_RUN_SIGNATURE
        assert result.slot == 55
        rpc.simulate_transaction.assert_awaited_once()
        rpc.send_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_simulation_error_still_simulated(self, rpc, keypair, signed_plan):
        rpc.simulate_transaction.return_value = SimpleNamespace(
            context=SimpleNamespace(slot=1), value=SimpleNamespace(err="TriggerNotReady")
        )
        result = await TransactionSubmitter(rpc, keypair).submit(signed_plan)
        assert result.status == ExecutionStatus.SIMULATED
        assert result.error_code == "trigger_not_ready"

    @pytest.mark.asyncio
    async def test_without_client(self, keypair, signed_plan):
        result = await TransactionSubmitter(None, keypair).submit(signed_plan)
        assert result.status == ExecutionStatus.SIMULATED
        assert result.slot == 0


class TestLive:
    def test_requires_rpc_client(self, keypair):
        with pytest.raises(KeeperError, match="RPC client"):
            TransactionSubmitter(None, keypair, dry_run=False)

    @pytest.mark.asyncio
    async def test_confirmed(self, rpc, keypair, signed_plan):
        rpc.get_signature_statuses.return_value = _status()
        submitter = TransactionSubmitter(rpc, keypair, dry_run=False, confirm_poll_interval_s=0)
        result = await submitter.submit(signed_plan)
        assert result.status == ExecutionStatus.CONFIRMED
        assert result.slot == 77
        assert result.signature == str(Signature.default())
        rpc.send_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_processed_is_not_enough(self, rpc, keypair, signed_plan):
        rpc.get_signature_statuses.side_effect = [
            _status(TransactionConfirmationStatus.Processed),
            _status(TransactionConfirmationStatus.Finalized),
        ]
        submitter = TransactionSubmitter(rpc, keypair, dry_run=False, confirm_poll_interval_s=0)
        result = await submitter.submit(signed_plan)
        assert result.status == ExecutionStatus.CONFIRMED
        assert rpc.get_signature_statuses.await_count == 2

    @pytest.mark.asyncio
    async def test_onchain_error(self, rpc, keypair, signed_plan):
        rpc.get_signature_statuses.return_value = _status(err="custom program error: 0x1")
        submitter = TransactionSubmitter(rpc, keypair, dry_run=False, confirm_poll_interval_s=0)
        result = await submitter.submit(signed_plan)
        assert result.status == ExecutionStatus.FAILED
        assert result.error_code == "program_error:0x1"

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, rpc, keypair, signed_plan):
        rpc.get_signature_statuses.return_value = SimpleNamespace(value=[None])
        submitter = TransactionSubmitter(
            rpc, keypair, dry_run=False, confirm_max_polls=2, confirm_poll_interval_s=0
        )
        result = await submitter.submit(signed_plan)
        assert result.status == ExecutionStatus.FAILED
        assert result.error_code == CONFIRMATION_TIMEOUT

    @pytest.mark.asyncio
    async def test_send_timeout(self, rpc, keypair, signed_plan):
        rpc.send_transaction.side_effect = httpx.ReadTimeout("slow")
        result = await TransactionSubmitter(rpc, keypair, dry_run=False).submit(signed_plan)
        assert result.status == ExecutionStatus.FAILED
        assert result.error_code == RPC_TIMEOUT

    @pytest.mark.asyncio
    async def test_send_error_classified(self, rpc, keypair, signed_plan):
        rpc.send_transaction.side_effect = RuntimeError("Blockhash not found")
        result = await TransactionSubmitter(rpc, keypair, dry_run=False).submit(signed_plan)
        assert result.status == ExecutionStatus.FAILED
        assert result.error_code == "blockhash_not_found"
